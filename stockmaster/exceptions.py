"""
Exceptions for Stockmaster.

All errors are StockError subclasses with a structured code for programmatic
handling. The subclass tells the caller *what kind* of failure happened; the
code tells it *which* rule was broken.

Usage:
    try:
        inventory.commit(delivery)
    except InsufficientStockError as e:
        for shortage in e.shortages:
            print(shortage['location'], shortage['available'])
"""

from decimal import Decimal
from typing import Any


class StockError(Exception):
    """
    Base structured exception for stock operations.

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    _default_messages: dict[str, str] = {}

    def __init__(self, code: str, message: str | None = None, **data):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, data={self.data!r})"

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'error': type(self).__name__,
            'code': self.code,
            'message': self.message,
            'data': {
                k: _serialize(v) for k, v in self.data.items()
            },
        }


def _serialize(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


class ValidationError(StockError):
    """Malformed input. Raised before any state change."""

    _default_messages = {
        'REQUIRED_FIELD': 'Required field is missing',
        'INVALID_QUANTITY': 'Quantity must be positive',
        'ZERO_QUANTITY': 'Movement quantity cannot be zero',
        'MISSING_ENDPOINT': 'Movement needs a source or a destination location',
        'INVALID_DIRECTION': 'Movement endpoints do not match its type',
        'NO_LINES': 'Document has no lines',
        'NO_DIFFERENCE': 'Counted quantity equals system quantity',
        'LOCATION_MISMATCH': 'Location does not belong to the warehouse',
        'SAME_LOCATION': 'Source and destination are the same location',
        'NO_LOCATION': 'Warehouse has no locations',
        'WAREHOUSE_INACTIVE': 'Warehouse is archived',
        'PRODUCT_INACTIVE': 'Product is inactive',
        'READ_ONLY_FIELD': 'Field cannot be changed',
        'UNKNOWN_KIND': 'Unknown document kind',
        'UNKNOWN_FIELD': 'Field does not apply to this document kind',
        'INVALID_DATE': 'Date filter must be a date or datetime',
    }


class InvalidTransitionError(StockError):
    """Document state machine violation."""

    _default_messages = {
        'INVALID_TRANSITION': 'Transition not allowed from the current status',
        'DOCUMENT_LOCKED': 'Document is done or canceled and can no longer change',
    }

    @property
    def current(self) -> str | None:
        """Shortcut for data['current']."""
        return self.data.get('current')


class InsufficientStockError(StockError):
    """A balance would go negative. The whole transition is rolled back."""

    _default_messages = {
        'INSUFFICIENT_STOCK': 'Insufficient stock at location',
    }

    @property
    def shortages(self) -> list[dict]:
        """Shortcut for data['shortages']."""
        return self.data.get('shortages', [])


class ConflictError(StockError):
    """Unique key collision, or delete of a record that still has dependents."""

    _default_messages = {
        'DUPLICATE_REFERENCE': 'Reference number already in use',
        'DUPLICATE_SKU': 'SKU already in use',
        'DUPLICATE_CODE': 'Warehouse code already in use',
        'DUPLICATE_LOCATION': 'Location name already in use in this warehouse',
        'HAS_DEPENDENTS': 'Record has stock, movements or documents referencing it',
    }


class NotFoundError(StockError):
    """Dangling reference to a product, warehouse, location or document."""

    _default_messages = {
        'PRODUCT_NOT_FOUND': 'Product not found',
        'WAREHOUSE_NOT_FOUND': 'Warehouse not found',
        'LOCATION_NOT_FOUND': 'Location not found',
        'DOCUMENT_NOT_FOUND': 'Document not found',
    }


class OperationTimedOut(StockError):
    """Lock wait exceeded. The transaction did not commit."""

    _default_messages = {
        'OPERATION_TIMED_OUT': 'Operation timed out waiting for a lock',
    }


class OperationFailed(StockError):
    """Unexpected persistence failure. The transaction did not commit."""

    _default_messages = {
        'PERSISTENCE_FAILURE': 'Database operation failed',
        'NEGATIVE_REPLAY': 'Ledger replay yields negative stock',
    }
