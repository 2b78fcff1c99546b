"""
Stock services — modular organization of inventory operations.

    from stockmaster.services import Documents, StockLedger, BalanceProjector, Catalog
"""

from stockmaster.services.balances import BalanceProjector
from stockmaster.services.catalog import Catalog
from stockmaster.services.documents import Documents
from stockmaster.services.ledger import StockLedger

__all__ = [
    'BalanceProjector',
    'Catalog',
    'Documents',
    'StockLedger',
]
