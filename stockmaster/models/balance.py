"""
StockByLocation model — quantity cache per (product, warehouse, location).
"""

from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _


class StockByLocationQuerySet(models.QuerySet):
    """Custom QuerySet for balance rows."""

    def for_product(self, product):
        return self.filter(product=product)

    def non_empty(self):
        return self.filter(quantity__gt=0)

    def ordered_for_lock(self):
        """Canonical lock order: sorted (product, warehouse, location) key."""
        return self.order_by('product_id', 'warehouse_id', 'location_id')


class StockByLocation(models.Model):
    """
    Quantity of a product at a warehouse location.

    This is a projection of the StockMovement ledger:
    - Updated only by BalanceProjector, in the same transaction as the
      ledger append that explains the change
    - Rebuildable from scratch by replaying the ledger
    - Created lazily on first movement, never deleted (may reach zero)
    """

    product = models.ForeignKey(
        'stockmaster.Product',
        on_delete=models.PROTECT,
        related_name='stock_by_location',
        verbose_name=_('Product'),
    )
    warehouse = models.ForeignKey(
        'stockmaster.Warehouse',
        on_delete=models.PROTECT,
        related_name='balances',
        verbose_name=_('Warehouse'),
    )
    location = models.ForeignKey(
        'stockmaster.Location',
        on_delete=models.PROTECT,
        related_name='balances',
        verbose_name=_('Location'),
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0'),
        verbose_name=_('Quantity'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = StockByLocationQuerySet.as_manager()

    class Meta:
        verbose_name = _('Stock by location')
        verbose_name_plural = _('Stock by location')
        ordering = ['product', 'warehouse', 'location']
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'warehouse', 'location'],
                name='unique_stock_coordinate',
            ),
            models.CheckConstraint(
                condition=Q(quantity__gte=0),
                name='stock_quantity_non_negative',
            ),
        ]
        indexes = [
            models.Index(fields=['warehouse', 'product'], name='balance_warehouse_product_idx'),
        ]

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.product_id, self.warehouse_id, self.location_id)

    def __str__(self) -> str:
        return f"{self.product} [{self.location}]: {self.quantity}"
