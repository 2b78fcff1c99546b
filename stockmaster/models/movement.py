"""
StockMovement model — Immutable ledger of quantity changes.
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from stockmaster.models.enums import MovementType


class StockMovement(models.Model):
    """
    Immutable record of a stock quantity change.

    Rules:
    - NEVER update() or delete()
    - Created only when a document reaches DONE
    - Corrections are new documents (adjustments), never edits

    Endpoints and sign by type:
        receipt     to only          quantity_change > 0
        delivery    from only        quantity_change < 0
        adjustment  to if > 0, from if < 0
        transfer    from and to      quantity_change > 0 (amount moved)
    """

    timestamp = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        verbose_name=_('Timestamp'),
    )
    product = models.ForeignKey(
        'stockmaster.Product',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('Product'),
    )
    movement_type = models.CharField(
        max_length=20,
        choices=MovementType.choices,
        verbose_name=_('Type'),
    )
    from_location = models.ForeignKey(
        'stockmaster.Location',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='outgoing_movements',
        verbose_name=_('From'),
    )
    to_location = models.ForeignKey(
        'stockmaster.Location',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='incoming_movements',
        verbose_name=_('To'),
    )
    quantity_change = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        verbose_name=_('Quantity change'),
        help_text=_('Positive = in, negative = out. Transfers: amount moved.'),
    )
    warehouse = models.ForeignKey(
        'stockmaster.Warehouse',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('Warehouse'),
    )

    # Originating document
    document = models.ForeignKey(
        'stockmaster.Document',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('Document'),
    )
    document_type = models.CharField(
        max_length=20,
        choices=MovementType.choices,
        verbose_name=_('Document type'),
    )

    # Snapshots
    product_name = models.CharField(max_length=200, blank=True, default='')
    product_sku = models.CharField(max_length=64, blank=True, default='')
    warehouse_name = models.CharField(max_length=100, blank=True, default='')
    from_location_name = models.CharField(max_length=255, blank=True, default='')
    to_location_name = models.CharField(max_length=255, blank=True, default='')

    notes = models.TextField(blank=True, default='', verbose_name=_('Notes'))
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        verbose_name=_('User'),
    )

    class Meta:
        verbose_name = _('Stock movement')
        verbose_name_plural = _('Stock movements')
        ordering = ['-timestamp', 'pk']
        constraints = [
            models.CheckConstraint(
                condition=Q(from_location__isnull=False) | Q(to_location__isnull=False),
                name='movement_has_endpoint',
            ),
            models.CheckConstraint(
                condition=~Q(quantity_change=0),
                name='movement_quantity_non_zero',
            ),
        ]
        indexes = [
            models.Index(fields=['product', 'timestamp'], name='movement_product_ts_idx'),
            models.Index(fields=['warehouse', 'timestamp'], name='movement_warehouse_ts_idx'),
            models.Index(fields=['movement_type', 'timestamp'], name='movement_type_ts_idx'),
        ]

    @property
    def is_internal(self) -> bool:
        """Both endpoints set: stock changes place, not amount."""
        return self.from_location_id is not None and self.to_location_id is not None

    @property
    def net_change(self) -> Decimal:
        """Effect on the product's total stock."""
        if self.is_internal:
            return Decimal('0')
        return self.quantity_change

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValueError(
                "Stock movements are immutable. "
                "Record a stock adjustment to correct a balance."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Prevent deletion — movements are immutable."""
        raise ValueError(
            "Stock movements are immutable. "
            "Record a stock adjustment to correct a balance."
        )

    def __str__(self) -> str:
        signal = '+' if self.quantity_change > 0 else ''
        return f"{signal}{self.quantity_change} {self.product_sku} | {self.document_type}"
