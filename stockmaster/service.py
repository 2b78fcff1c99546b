"""
Inventory Service — the single public interface for stock operations.

Usage:
    from stockmaster import inventory, StockError

    receipt = inventory.documents.create(
        'receipt', warehouse=main,
        lines=[{'product': widget, 'quantity': 50}],
    )
    inventory.commit(receipt)
    inventory.balance(widget)  # Decimal('50')
"""

from decimal import Decimal

from stockmaster.models.document import Document
from stockmaster.models.enums import DocumentStatus
from stockmaster.services import reports
from stockmaster.services.balances import BalanceProjector
from stockmaster.services.catalog import Catalog
from stockmaster.services.documents import Documents
from stockmaster.services.ledger import StockLedger


class Inventory:
    """
    Facade over the inventory services.

    Namespaces:
        documents: lifecycle engine (create, update, transition, ...)
        ledger:    append-only movement log
        balances:  per-location projection
        catalog:   products, warehouses, locations
        reports:   dashboard counters, low-stock detection

    All state-changing calls are atomic. See each service for locking.
    """

    documents = Documents
    ledger = StockLedger
    balances = BalanceProjector
    catalog = Catalog
    reports = reports

    # ══════════════════════════════════════════════════════════════
    # SHORTCUTS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def commit(cls, document, user=None) -> Document:
        """Validate a document (→ DONE), applying its stock effect."""
        return Documents.transition(document, DocumentStatus.DONE, user=user)

    @classmethod
    def cancel(cls, document, user=None) -> Document:
        """Cancel a document. No stock effect."""
        return Documents.transition(document, DocumentStatus.CANCELED, user=user)

    @classmethod
    def balance(cls, product, warehouse=None, location=None) -> Decimal:
        """On-hand quantity, optionally narrowed to a warehouse or location."""
        return BalanceProjector.get(product, warehouse=warehouse, location=location)

    @classmethod
    def movements(cls, **filters):
        """Ledger entries. See StockLedger.list_movements for filters."""
        return StockLedger.list_movements(**filters)
