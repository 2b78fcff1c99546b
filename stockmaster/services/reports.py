"""
Stock reports — dashboard counters and low-stock detection.

Usage:
    from stockmaster.services.reports import dashboard_kpis, low_stock_products

    kpis = dashboard_kpis()
    # {'total_products': 12, 'low_stock_items': 2, ...}

    # Run periodically (cron) or after commits
    for product, on_hand in low_stock_products():
        ...
"""

import logging
from decimal import Decimal

from django.db.models import F

from stockmaster.models.document import Document
from stockmaster.models.enums import DocumentStatus
from stockmaster.models.product import Product

logger = logging.getLogger('stockmaster')


def dashboard_kpis() -> dict[str, int]:
    """
    Counters for the inventory dashboard.

    Returns:
        total_products: every product in the catalog
        low_stock_items: 0 < total_stock <= reorder_level
        out_of_stock_items: total_stock == 0
        pending_receipts: receipts in draft or waiting
        pending_deliveries: deliveries in draft or waiting
        scheduled_transfers: transfers in waiting or ready
    """
    pending = [DocumentStatus.DRAFT, DocumentStatus.WAITING]
    return {
        'total_products': Product.objects.count(),
        'low_stock_items': Product.objects.low_stock().count(),
        'out_of_stock_items': Product.objects.out_of_stock().count(),
        'pending_receipts': Document.objects.receipts().filter(status__in=pending).count(),
        'pending_deliveries': Document.objects.deliveries().filter(status__in=pending).count(),
        'scheduled_transfers': Document.objects.transfers().filter(
            status__in=[DocumentStatus.WAITING, DocumentStatus.READY],
        ).count(),
    }


def low_stock_products(include_out_of_stock: bool = True) -> list[tuple[Product, Decimal]]:
    """
    Products at or below their reorder level.

    Products without a reorder level are never reported.

    Args:
        include_out_of_stock: also report products with zero stock.

    Returns:
        List of (product, total_stock) tuples, lowest stock first.
    """
    qs = Product.objects.active().filter(reorder_level__isnull=False)
    if include_out_of_stock:
        qs = qs.filter(total_stock__lte=F('reorder_level'))
    else:
        qs = qs.low_stock()

    flagged = []
    for product in qs.order_by('total_stock', 'name'):
        flagged.append((product, product.total_stock))
        logger.warning(
            f"Low stock: {product.sku} has {product.total_stock} "
            f"(reorder level {product.reorder_level})"
        )
    return flagged
