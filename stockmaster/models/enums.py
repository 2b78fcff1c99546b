"""
Enums for Stockmaster models.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class DocumentKind(models.TextChoices):
    """
    Kind of stock document. Doubles as the ledger movement type.

    RECEIPT:    Goods arriving from a supplier (stock in)
    DELIVERY:   Goods leaving to a customer (stock out)
    TRANSFER:   Goods moving between two locations (in and out)
    ADJUSTMENT: Physical count correction (in or out)
    """
    RECEIPT = 'receipt', _('Receipt')
    DELIVERY = 'delivery', _('Delivery order')
    TRANSFER = 'transfer', _('Internal transfer')
    ADJUSTMENT = 'adjustment', _('Stock adjustment')


# The ledger records the kind of the document that produced each movement
MovementType = DocumentKind


class DocumentStatus(models.TextChoices):
    """Document lifecycle status."""
    DRAFT = 'draft', _('Draft')            # Created, freely editable
    WAITING = 'waiting', _('Waiting')      # Submitted, awaiting goods/picking
    READY = 'ready', _('Ready')            # Picked, ready to validate
    DONE = 'done', _('Done')               # Committed to the ledger, immutable
    CANCELED = 'canceled', _('Canceled')   # Abandoned, no stock effect

    @classmethod
    def terminal(cls) -> frozenset:
        return frozenset({cls.DONE, cls.CANCELED})

    @classmethod
    def open(cls) -> list:
        """Statuses in which a document can still change."""
        return [cls.DRAFT, cls.WAITING, cls.READY]
