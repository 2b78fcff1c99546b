"""
Balance projector — per-location and per-product stock derived from the ledger.

StockByLocation and Product.total_stock are caches. They are written only
here, always inside the transaction that appends the ledger entries that
explain the change, and can be rebuilt at any time by replaying the ledger.
"""

import logging
from collections.abc import Iterable
from decimal import Decimal

from django.db import transaction
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce

from stockmaster.exceptions import InsufficientStockError, OperationFailed, ValidationError
from stockmaster.models.balance import StockByLocation
from stockmaster.models.movement import StockMovement
from stockmaster.models.product import Product
from stockmaster.models.warehouse import Location
from stockmaster.services.rules import BalanceDelta, endpoint_deltas, merge_deltas, to_quantity

logger = logging.getLogger('stockmaster')

ZERO = Decimal('0')


def _pk(obj):
    return getattr(obj, 'pk', obj)


class BalanceProjector:
    """Read and maintain the stock projection."""

    # ══════════════════════════════════════════════════════════════
    # QUERIES (no locking)
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def get_balance(cls, product, warehouse, location) -> Decimal:
        """Quantity at one coordinate. Missing row = 0."""
        quantity = StockByLocation.objects.filter(
            product=_pk(product),
            warehouse=_pk(warehouse),
            location=_pk(location),
        ).values_list('quantity', flat=True).first()
        return quantity if quantity is not None else ZERO

    @classmethod
    def get(cls, product, warehouse=None, location=None) -> Decimal:
        """
        Aggregate quantity of a product.

        Args:
            product: Product or pk
            warehouse: restrict to one warehouse (None = all)
            location: restrict to one location (None = all)
        """
        qs = StockByLocation.objects.filter(product=_pk(product))
        if warehouse is not None:
            qs = qs.filter(warehouse=_pk(warehouse))
        if location is not None:
            qs = qs.filter(location=_pk(location))
        return qs.aggregate(t=Coalesce(Sum('quantity'), ZERO))['t']

    @classmethod
    def list_balances(cls, product=None, warehouse=None, include_empty: bool = False):
        """Balance rows with filters."""
        qs = StockByLocation.objects.select_related('product', 'warehouse', 'location')
        if product is not None:
            qs = qs.filter(product=_pk(product))
        if warehouse is not None:
            qs = qs.filter(warehouse=_pk(warehouse))
        if not include_empty:
            qs = qs.non_empty()
        return qs

    # ══════════════════════════════════════════════════════════════
    # MUTATIONS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def apply_delta(cls, product, warehouse, location, delta) -> StockByLocation:
        """
        Apply one signed delta at (product, warehouse, location).

        Raises:
            InsufficientStockError: result would be negative
            ValidationError('ZERO_QUANTITY'): delta == 0
            ValidationError('LOCATION_MISMATCH'): location not in warehouse
        """
        delta = to_quantity(delta, 'delta')
        if delta == 0:
            raise ValidationError('ZERO_QUANTITY')
        if not Location.objects.filter(pk=_pk(location), warehouse=_pk(warehouse)).exists():
            raise ValidationError(
                'LOCATION_MISMATCH', location=_pk(location), warehouse=_pk(warehouse),
            )
        rows = cls.apply_deltas([
            BalanceDelta(
                product_id=_pk(product),
                warehouse_id=_pk(warehouse),
                location_id=_pk(location),
                delta=delta,
            )
        ])
        return rows[0]

    @classmethod
    def apply_deltas(cls, deltas: Iterable[BalanceDelta]) -> list[StockByLocation]:
        """
        Apply a set of deltas all-or-nothing.

        1. Merge deltas sharing a coordinate
        2. Lock rows in sorted key order (rows created on first touch)
        3. Check every result is >= 0, collecting all shortages
        4. Write balances and recompute each touched product's total

        Raises:
            InsufficientStockError: any result would be negative. Nothing is
                written; data['shortages'] lists every offending coordinate.

        Concurrency:
            - Runs under transaction.atomic()
            - select_for_update() on StockByLocation, then Product, both in
              ascending key order so overlapping commits cannot deadlock
        """
        merged = merge_deltas(deltas)
        if not merged:
            return []

        keys = sorted(merged)

        with transaction.atomic():
            rows = cls._lock_rows(keys)

            shortages = []
            for key in keys:
                row = rows[key]
                result = row.quantity + merged[key]
                if result < 0:
                    shortages.append({
                        'product_id': key[0],
                        'warehouse_id': key[1],
                        'location_id': key[2],
                        'available': row.quantity,
                        'requested': -merged[key],
                    })

            if shortages:
                raise InsufficientStockError('INSUFFICIENT_STOCK', shortages=shortages)

            for key in keys:
                row = rows[key]
                row.quantity = row.quantity + merged[key]
                row.save(update_fields=['quantity', 'updated_at'])

            cls._recompute_totals({key[0] for key in keys})

        logger.info(
            "balance.apply",
            extra={
                "coordinates": len(keys),
                "deltas": {f"{p}:{w}:{loc}": str(merged[(p, w, loc)]) for p, w, loc in keys},
            },
        )
        return [rows[key] for key in keys]

    @classmethod
    def locked_balance(cls, product, warehouse, location) -> StockByLocation:
        """
        Lock (creating if needed) one balance row.

        Must be called inside a transaction.
        """
        key = (_pk(product), _pk(warehouse), _pk(location))
        return cls._lock_rows([key])[key]

    # ══════════════════════════════════════════════════════════════
    # PROJECTION
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def replay(cls, movements: Iterable[StockMovement]) -> dict[tuple[int, int, int], Decimal]:
        """
        Rebuild balances from ledger entries, starting from empty.

        Pure function of its input. Coordinates that net to zero are kept.
        """
        balances: dict[tuple[int, int, int], Decimal] = {}
        for movement in movements:
            for d in endpoint_deltas(movement):
                balances[d.key] = balances.get(d.key, ZERO) + d.delta
        return balances

    @classmethod
    def rebuild(cls, product=None, dry_run: bool = False) -> list[dict]:
        """
        Replay the ledger and compare with the stored projection.

        Use for:
        - Integrity audit (dry_run=True)
        - Correction after a detected inconsistency

        Returns:
            List of drifts: dicts with product_id, warehouse_id, location_id
            (None for total_stock drifts), actual, expected.

        Raises:
            OperationFailed('NEGATIVE_REPLAY'): the ledger replays to a
                negative balance; nothing is written
        """
        drifts = []

        with transaction.atomic():
            movements = StockMovement.objects.select_related(
                'from_location', 'to_location',
            ).order_by('pk')
            rows = StockByLocation.objects.select_for_update().ordered_for_lock()
            products = Product.objects.select_for_update().order_by('pk')
            if product is not None:
                movements = movements.filter(product=_pk(product))
                rows = rows.filter(product=_pk(product))
                products = products.filter(pk=_pk(product))

            expected = cls.replay(movements.iterator())
            negative = sorted(key for key, quantity in expected.items() if quantity < 0)
            if negative and not dry_run:
                raise OperationFailed('NEGATIVE_REPLAY', coordinates=negative)
            rows = {row.key: row for row in rows}

            for key in sorted(set(expected) | set(rows)):
                want = expected.get(key, ZERO)
                row = rows.get(key)
                have = row.quantity if row is not None else ZERO
                if row is not None and have == want:
                    continue
                if row is None and want == 0:
                    continue
                drifts.append({
                    'product_id': key[0],
                    'warehouse_id': key[1],
                    'location_id': key[2],
                    'actual': have,
                    'expected': want,
                })
                if not dry_run:
                    row = row or StockByLocation(
                        product_id=key[0], warehouse_id=key[1], location_id=key[2],
                    )
                    row.quantity = want
                    row.save()

            totals = {}
            for key, quantity in expected.items():
                totals[key[0]] = totals.get(key[0], ZERO) + quantity

            for prod in products:
                want = totals.get(prod.pk, ZERO)
                if prod.total_stock != want:
                    drifts.append({
                        'product_id': prod.pk,
                        'warehouse_id': None,
                        'location_id': None,
                        'actual': prod.total_stock,
                        'expected': want,
                    })
                    if not dry_run:
                        Product.objects.filter(pk=prod.pk).update(total_stock=want)

        for drift in drifts:
            logger.warning(
                f"Balance drift product={drift['product_id']} "
                f"warehouse={drift['warehouse_id']} location={drift['location_id']}: "
                f"{drift['actual']} → {drift['expected']}"
                f"{' (dry run)' if dry_run else ''}"
            )

        return drifts

    # ══════════════════════════════════════════════════════════════
    # INTERNALS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def _get_or_create_row(cls, key) -> StockByLocation:
        row, _ = StockByLocation.objects.get_or_create(
            product_id=key[0], warehouse_id=key[1], location_id=key[2],
        )
        return row

    @classmethod
    def _lock_rows(cls, keys) -> dict[tuple[int, int, int], StockByLocation]:
        """Create missing rows, then select_for_update in key order."""
        keys = sorted(keys)
        for key in keys:
            cls._get_or_create_row(key)

        condition = Q()
        for product_id, warehouse_id, location_id in keys:
            condition |= Q(
                product_id=product_id,
                warehouse_id=warehouse_id,
                location_id=location_id,
            )
        locked = StockByLocation.objects.select_for_update().filter(condition).ordered_for_lock()
        return {row.key: row for row in locked}

    @classmethod
    def _recompute_totals(cls, product_ids) -> None:
        """total_stock = Σ StockByLocation.quantity for each product."""
        ids = sorted(product_ids)
        list(Product.objects.select_for_update().filter(pk__in=ids).order_by('pk'))

        sums = dict(
            StockByLocation.objects.filter(product_id__in=ids)
            .order_by()
            .values('product_id')
            .annotate(t=Sum('quantity'))
            .values_list('product_id', 't')
        )
        for product_id in ids:
            Product.objects.filter(pk=product_id).update(
                total_stock=sums.get(product_id) or ZERO,
            )
