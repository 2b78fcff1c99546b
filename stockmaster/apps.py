"""Django app configuration for Stockmaster."""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class StockmasterConfig(AppConfig):
    """Configuration for Stockmaster app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "stockmaster"
    verbose_name = _("Inventory")
