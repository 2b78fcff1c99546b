"""
Django Stockmaster — warehouse stock movements and balances.

Usage:
    from stockmaster import inventory, StockError

    receipt = inventory.documents.create('receipt', warehouse=main, lines=[...])
    inventory.commit(receipt)
    inventory.balance(widget, warehouse=main)
"""


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'inventory':
        from stockmaster.service import Inventory
        return Inventory
    elif name == 'StockError':
        from stockmaster.exceptions import StockError
        return StockError
    elif name == 'Product':
        from stockmaster.models.product import Product
        return Product
    elif name == 'Warehouse':
        from stockmaster.models.warehouse import Warehouse
        return Warehouse
    elif name == 'Location':
        from stockmaster.models.warehouse import Location
        return Location
    elif name == 'StockByLocation':
        from stockmaster.models.balance import StockByLocation
        return StockByLocation
    elif name == 'StockMovement':
        from stockmaster.models.movement import StockMovement
        return StockMovement
    elif name == 'Document':
        from stockmaster.models.document import Document
        return Document
    elif name == 'DocumentKind':
        from stockmaster.models.enums import DocumentKind
        return DocumentKind
    elif name == 'DocumentStatus':
        from stockmaster.models.enums import DocumentStatus
        return DocumentStatus
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'inventory',
    'StockError',
    'Product',
    'Warehouse',
    'Location',
    'StockByLocation',
    'StockMovement',
    'Document',
    'DocumentKind',
    'DocumentStatus',
]

__version__ = '0.1.0'
