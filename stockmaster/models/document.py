"""
Document models — the unit of user intent that moves stock.
"""

from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from stockmaster.models.enums import DocumentKind, DocumentStatus


class DocumentQuerySet(models.QuerySet):
    """Custom QuerySet for Document with lifecycle filters."""

    def of_kind(self, kind):
        return self.filter(kind=kind)

    def receipts(self):
        return self.of_kind(DocumentKind.RECEIPT)

    def deliveries(self):
        return self.of_kind(DocumentKind.DELIVERY)

    def transfers(self):
        return self.of_kind(DocumentKind.TRANSFER)

    def adjustments(self):
        return self.of_kind(DocumentKind.ADJUSTMENT)

    def open(self):
        return self.filter(status__in=DocumentStatus.open())

    def done(self):
        return self.filter(status=DocumentStatus.DONE)


class Document(models.Model):
    """
    Receipt, delivery order, internal transfer or stock adjustment.

    One table, discriminated by ``kind``. Which fields apply:

    ┌─────────────┬───────────────────────────────────────────────┐
    │ receipt     │ warehouse, location (dest), partner, lines    │
    │ delivery    │ warehouse, location (source), partner, lines  │
    │ transfer    │ warehouse/location (source),                  │
    │             │ to_warehouse/to_location (dest), lines        │
    │ adjustment  │ warehouse, location, product,                 │
    │             │ system_quantity, counted_quantity, reason     │
    └─────────────┴───────────────────────────────────────────────┘

    LIFECYCLE:

        DRAFT ──► WAITING ──► READY ──► DONE
          │          │          │
          └──────────┴──────────┴────► CANCELED

    DRAFT and WAITING may also go straight to DONE. DONE and CANCELED are
    terminal. Only the move to DONE touches stock.

    The ``*_name`` fields are snapshots refreshed on every edit and frozen
    when the document is committed, so history keeps the names that were
    current at the time even after a warehouse is archived or renamed.
    """

    kind = models.CharField(
        max_length=20,
        choices=DocumentKind.choices,
        db_index=True,
        verbose_name=_('Kind'),
    )
    reference_no = models.CharField(
        max_length=40,
        unique=True,
        editable=False,
        verbose_name=_('Reference'),
        help_text=_('<PREFIX>-<YEAR>-<seq>, assigned once at creation'),
    )
    status = models.CharField(
        max_length=20,
        choices=DocumentStatus.choices,
        default=DocumentStatus.DRAFT,
        db_index=True,
        verbose_name=_('Status'),
    )
    date = models.DateTimeField(
        default=timezone.now,
        verbose_name=_('Scheduled date'),
    )
    partner_name = models.CharField(
        max_length=200,
        blank=True,
        default='',
        verbose_name=_('Supplier / customer'),
    )

    # Source for transfers, the only side for everything else
    warehouse = models.ForeignKey(
        'stockmaster.Warehouse',
        on_delete=models.PROTECT,
        related_name='documents',
        verbose_name=_('Warehouse'),
    )
    location = models.ForeignKey(
        'stockmaster.Location',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='documents',
        verbose_name=_('Location'),
        help_text=_('Empty = warehouse primary location'),
    )

    # Transfer destination
    to_warehouse = models.ForeignKey(
        'stockmaster.Warehouse',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='incoming_transfers',
        verbose_name=_('Destination warehouse'),
    )
    to_location = models.ForeignKey(
        'stockmaster.Location',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='incoming_transfers',
        verbose_name=_('Destination location'),
    )

    # Adjustment
    product = models.ForeignKey(
        'stockmaster.Product',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='adjustments',
        verbose_name=_('Product'),
    )
    system_quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        null=True,
        blank=True,
        verbose_name=_('System quantity'),
    )
    counted_quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        null=True,
        blank=True,
        verbose_name=_('Counted quantity'),
    )
    reason = models.CharField(
        max_length=255,
        blank=True,
        default='',
        verbose_name=_('Reason'),
    )

    notes = models.TextField(blank=True, default='', verbose_name=_('Notes'))

    # Snapshots
    warehouse_name = models.CharField(max_length=100, blank=True, default='')
    location_name = models.CharField(max_length=100, blank=True, default='')
    to_warehouse_name = models.CharField(max_length=100, blank=True, default='')
    to_location_name = models.CharField(max_length=100, blank=True, default='')
    product_name = models.CharField(max_length=200, blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    done_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name=_('Validated at'),
    )

    objects = DocumentQuerySet.as_manager()

    class Meta:
        verbose_name = _('Document')
        verbose_name_plural = _('Documents')
        ordering = ['-date', '-pk']
        indexes = [
            models.Index(fields=['kind', 'status'], name='document_kind_status_idx'),
            models.Index(fields=['warehouse', 'kind'], name='document_warehouse_kind_idx'),
        ]

    # ══════════════════════════════════════════════════════════════
    # PROPERTIES
    # ══════════════════════════════════════════════════════════════

    @property
    def is_locked(self) -> bool:
        """Done or canceled: no further edits."""
        return self.status in DocumentStatus.terminal()

    @property
    def difference(self) -> Decimal | None:
        """Adjustment difference (counted - system)."""
        if self.counted_quantity is None or self.system_quantity is None:
            return None
        return self.counted_quantity - self.system_quantity

    def refresh_snapshots(self) -> None:
        """Copy current display names from the referenced catalog rows."""
        self.warehouse_name = self.warehouse.name if self.warehouse_id else ''
        self.location_name = self.location.name if self.location_id else ''
        self.to_warehouse_name = self.to_warehouse.name if self.to_warehouse_id else ''
        self.to_location_name = self.to_location.name if self.to_location_id else ''
        self.product_name = self.product.name if self.product_id else ''

    def __str__(self) -> str:
        return f"{self.reference_no} ({self.get_status_display()})"


class DocumentLine(models.Model):
    """
    One product line of a receipt, delivery or transfer.

    Owned exclusively by its document. Frozen once the document is done.
    """

    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='lines',
        verbose_name=_('Document'),
    )
    product = models.ForeignKey(
        'stockmaster.Product',
        on_delete=models.PROTECT,
        related_name='document_lines',
        verbose_name=_('Product'),
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        verbose_name=_('Quantity'),
    )
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        verbose_name=_('Unit price'),
    )

    # Snapshots
    product_name = models.CharField(max_length=200, blank=True, default='')
    product_sku = models.CharField(max_length=64, blank=True, default='')
    unit_of_measure = models.CharField(max_length=20, blank=True, default='')

    class Meta:
        verbose_name = _('Document line')
        verbose_name_plural = _('Document lines')
        ordering = ['pk']

    def refresh_snapshots(self) -> None:
        self.product_name = self.product.name
        self.product_sku = self.product.sku
        self.unit_of_measure = self.product.unit_of_measure

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product_sku or self.product_id}"


class ReferenceSequence(models.Model):
    """
    Counter behind reference numbers: one row per (prefix, year).

    Locked with select_for_update() while drawing the next value.
    """

    prefix = models.CharField(max_length=10)
    year = models.PositiveIntegerField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = _('Reference sequence')
        verbose_name_plural = _('Reference sequences')
        constraints = [
            models.UniqueConstraint(
                fields=['prefix', 'year'],
                name='unique_reference_sequence',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.prefix}-{self.year}: {self.last_value}"
