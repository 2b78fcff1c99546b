"""
Warehouse and Location models — where stock exists.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class WarehouseQuerySet(models.QuerySet):
    """Custom QuerySet for Warehouse with convenience filters."""

    def active(self):
        return self.filter(is_active=True)

    def archived(self):
        return self.filter(is_active=False)


class Warehouse(models.Model):
    """
    A site that owns storage locations.

    Warehouses are never hard-deleted once stock has passed through them;
    archiving (is_active=False) is the supported removal path.
    """

    code = models.CharField(
        unique=True,
        max_length=20,
        verbose_name=_('Code'),
        help_text=_('Short unique code (e.g. WH-MAIN)'),
    )
    name = models.CharField(
        max_length=100,
        verbose_name=_('Name'),
    )
    address = models.CharField(
        max_length=255,
        blank=True,
        default='',
        verbose_name=_('Address'),
    )
    contact_info = models.CharField(
        max_length=255,
        blank=True,
        default='',
        verbose_name=_('Contact'),
    )
    is_active = models.BooleanField(
        default=True,
        verbose_name=_('Active'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = WarehouseQuerySet.as_manager()

    class Meta:
        verbose_name = _('Warehouse')
        verbose_name_plural = _('Warehouses')
        ordering = ['name']

    @property
    def primary_location(self) -> 'Location | None':
        """
        Default location for documents that do not name one.

        The location flagged is_primary, else the oldest location.
        """
        return (
            self.locations.order_by('-is_primary', 'pk').first()
        )

    def __str__(self) -> str:
        return f"{self.code} - {self.name}"


class Location(models.Model):
    """
    A storage location (shelf, rack, bay) inside exactly one warehouse.
    """

    warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        related_name='locations',
        verbose_name=_('Warehouse'),
    )
    name = models.CharField(
        max_length=100,
        verbose_name=_('Name'),
    )
    is_primary = models.BooleanField(
        default=False,
        verbose_name=_('Primary location'),
        help_text=_('Default location for documents that do not name one.'),
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Location')
        verbose_name_plural = _('Locations')
        ordering = ['warehouse', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['warehouse', 'name'],
                name='unique_location_name_per_warehouse',
            ),
        ]

    @property
    def full_name(self) -> str:
        """Label used in ledger snapshots: 'Main Warehouse - Rack A'."""
        return f"{self.warehouse.name} - {self.name}"

    def __str__(self) -> str:
        return self.full_name
