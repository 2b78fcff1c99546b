"""
Stockmaster Models.

Core models for stock management:
- Warehouse / Location: Where stock exists
- Product: What is stocked
- StockByLocation: Quantity cache per location (projection of the ledger)
- StockMovement: Immutable ledger of changes
- Document / DocumentLine: Receipts, deliveries, transfers, adjustments
- ReferenceSequence: Counter behind document reference numbers
"""

from stockmaster.models.balance import StockByLocation
from stockmaster.models.document import Document, DocumentLine, ReferenceSequence
from stockmaster.models.enums import DocumentKind, DocumentStatus, MovementType
from stockmaster.models.movement import StockMovement
from stockmaster.models.product import Product
from stockmaster.models.warehouse import Location, Warehouse

__all__ = [
    'DocumentKind',
    'DocumentStatus',
    'MovementType',
    'Warehouse',
    'Location',
    'Product',
    'StockByLocation',
    'StockMovement',
    'Document',
    'DocumentLine',
    'ReferenceSequence',
]
