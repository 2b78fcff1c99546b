"""
Stockmaster configuration.

Usage in settings.py:
    STOCKMASTER = {
        "REFERENCE_PREFIXES": {"receipt": "IN", "delivery": "OUT",
                               "transfer": "INT", "adjustment": "ADJ"},
        "REFERENCE_PADDING": 4,
        "LOCK_TIMEOUT_MS": 5000,
        "COMMIT_RETRIES": 3,
    }
"""

from dataclasses import dataclass, field
from typing import Any

from django.conf import settings


def _default_prefixes() -> dict[str, str]:
    return {
        'receipt': 'REC',
        'delivery': 'DEL',
        'transfer': 'TRF',
        'adjustment': 'ADJ',
    }


@dataclass
class StockmasterSettings:
    """Stockmaster configuration settings."""

    # Reference number prefix per document kind: <PREFIX>-<YEAR>-<seq>
    REFERENCE_PREFIXES: dict[str, str] = field(default_factory=_default_prefixes)

    # Zero-padding width of the sequence part
    REFERENCE_PADDING: int = 3

    # Lock wait bound for done transitions (PostgreSQL only, 0 = server default)
    LOCK_TIMEOUT_MS: int = 0

    # Retries on deadlock / serialization failure
    COMMIT_RETRIES: int = 2


def get_stockmaster_settings() -> StockmasterSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "STOCKMASTER", {})
    values = {
        k: v for k, v in user_settings.items()
        if k in StockmasterSettings.__dataclass_fields__
    }
    if 'REFERENCE_PREFIXES' in values:
        # Partial overrides keep the remaining defaults
        values['REFERENCE_PREFIXES'] = {
            **_default_prefixes(), **values['REFERENCE_PREFIXES'],
        }
    return StockmasterSettings(**values)


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_stockmaster_settings(), name)


stockmaster_settings = _LazySettings()
