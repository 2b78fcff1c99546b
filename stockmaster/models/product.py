"""
Product model — what is stocked.
"""

from decimal import Decimal

from django.db import models
from django.db.models import F, Q
from django.utils.translation import gettext_lazy as _


class ProductQuerySet(models.QuerySet):
    """Custom QuerySet for Product with stock-level filters."""

    def active(self):
        return self.filter(is_active=True)

    def out_of_stock(self):
        return self.filter(total_stock=0)

    def low_stock(self):
        """In stock, but at or below the reorder level."""
        return self.filter(
            reorder_level__isnull=False,
            total_stock__gt=0,
            total_stock__lte=F('reorder_level'),
        )

    def search(self, term: str):
        """Name or SKU substring, case-insensitive."""
        return self.filter(Q(name__icontains=term) | Q(sku__icontains=term))


class Product(models.Model):
    """
    A stockable product.

    total_stock is a cache of the sum of this product's StockByLocation
    rows. Only the balance projector writes it.
    """

    sku = models.CharField(
        unique=True,
        max_length=64,
        verbose_name=_('SKU'),
    )
    name = models.CharField(
        max_length=200,
        verbose_name=_('Name'),
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        default='',
        db_index=True,
        verbose_name=_('Category'),
    )
    unit_of_measure = models.CharField(
        max_length=20,
        default='pieces',
        verbose_name=_('Unit of measure'),
    )
    description = models.TextField(
        blank=True,
        default='',
        verbose_name=_('Description'),
    )
    reorder_level = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        null=True,
        blank=True,
        verbose_name=_('Reorder level'),
        help_text=_('Low-stock threshold. Empty = no alert.'),
    )
    is_active = models.BooleanField(
        default=True,
        verbose_name=_('Active'),
    )

    # Cache of Σ StockByLocation.quantity (updated by BalanceProjector)
    total_stock = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0'),
        editable=False,
        verbose_name=_('Total stock'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProductQuerySet.as_manager()

    class Meta:
        verbose_name = _('Product')
        verbose_name_plural = _('Products')
        ordering = ['name']
        constraints = [
            models.CheckConstraint(
                condition=Q(total_stock__gte=0),
                name='product_total_stock_non_negative',
            ),
        ]

    @property
    def is_low_stock(self) -> bool:
        if self.reorder_level is None:
            return False
        return Decimal('0') < self.total_stock <= self.reorder_level

    def __str__(self) -> str:
        return f"{self.name} ({self.sku})"
