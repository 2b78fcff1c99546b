"""
Serialized write transactions.

Wraps a unit of work in transaction.atomic() and maps database failures
onto the caller-facing error taxonomy:

- lock wait exceeded          -> OperationTimedOut
- deadlock / serialization    -> retried, then OperationFailed
- anything else from the DB   -> OperationFailed

Either the whole unit committed or none of it did.
"""

import logging

from django.db import DatabaseError, connection, transaction

from stockmaster.conf import stockmaster_settings
from stockmaster.exceptions import OperationFailed, OperationTimedOut

logger = logging.getLogger('stockmaster')

RETRYABLE_MARKERS = (
    'deadlock',
    'could not serialize',
    'serialization failure',
    'database is locked',
)

TIMEOUT_MARKERS = (
    'lock timeout',
    'lock_timeout',
    'timed out',
    'statement timeout',
)


def classify(exc: DatabaseError) -> str:
    """'timeout', 'retry' or 'fatal'."""
    text = str(exc).lower()
    if any(marker in text for marker in TIMEOUT_MARKERS):
        return 'timeout'
    if any(marker in text for marker in RETRYABLE_MARKERS):
        return 'retry'
    return 'fatal'


def apply_lock_timeout() -> None:
    """Bound lock waits for the current transaction (PostgreSQL only)."""
    timeout_ms = stockmaster_settings.LOCK_TIMEOUT_MS
    if timeout_ms and connection.vendor == 'postgresql':
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT set_config('lock_timeout', %s, true)",
                [f'{int(timeout_ms)}ms'],
            )


def run_serialized(operation, *, label: str = '', retries: int | None = None):
    """
    Run operation() atomically, retrying on conflict.

    StockError subclasses raised by the operation pass through untouched;
    only DatabaseError is translated.
    """
    if retries is None:
        retries = stockmaster_settings.COMMIT_RETRIES
    attempts = max(1, retries + 1)

    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                apply_lock_timeout()
                return operation()
        except DatabaseError as exc:
            kind = classify(exc)
            if kind == 'timeout':
                raise OperationTimedOut(
                    'OPERATION_TIMED_OUT', operation=label, detail=str(exc),
                ) from exc
            if kind == 'retry' and attempt < attempts:
                logger.warning(
                    "transaction.retry",
                    extra={"operation": label, "attempt": attempt, "error": str(exc)},
                )
                continue
            logger.error(
                "transaction.failed",
                extra={"operation": label, "attempt": attempt, "error": str(exc)},
            )
            raise OperationFailed(
                'PERSISTENCE_FAILURE', operation=label, detail=str(exc),
            ) from exc
