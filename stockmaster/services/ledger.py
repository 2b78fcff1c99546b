"""
Stock ledger — append-only log of stock movements.

The ledger is the source of truth for every quantity change. It never
looks at balances: negative-stock prevention is the projector's job and
happens before anything is appended.
"""

import logging
from datetime import date, datetime

from django.db import transaction
from django.db.models import Q

from stockmaster.exceptions import ValidationError
from stockmaster.models.movement import StockMovement
from stockmaster.services.rules import Direction, movement_direction, to_quantity

logger = logging.getLogger('stockmaster')


class StockLedger:
    """Append and query ledger entries."""

    @classmethod
    def append_movement(cls, *, product, movement_type, quantity_change,
                        document, warehouse, from_location=None,
                        to_location=None, timestamp=None, notes='',
                        user=None) -> StockMovement:
        """
        Append one immutable movement.

        Raises:
            ValidationError('MISSING_ENDPOINT'): neither from nor to location
            ValidationError('ZERO_QUANTITY'): quantity_change == 0
            ValidationError('INVALID_DIRECTION'): endpoints/sign contradict type
        """
        if from_location is None and to_location is None:
            raise ValidationError('MISSING_ENDPOINT', movement_type=movement_type)

        quantity_change = to_quantity(quantity_change, 'quantity_change')
        direction = movement_direction(movement_type, quantity_change)

        expected = {
            Direction.INBOUND: (False, True),
            Direction.OUTBOUND: (True, False),
            Direction.INTERNAL: (True, True),
        }[direction]
        if (from_location is not None, to_location is not None) != expected:
            raise ValidationError(
                'INVALID_DIRECTION',
                movement_type=movement_type,
                direction=direction.value,
            )

        fields = {}
        if timestamp is not None:
            fields['timestamp'] = timestamp

        with transaction.atomic():
            movement = StockMovement.objects.create(
                product=product,
                movement_type=movement_type,
                quantity_change=quantity_change,
                from_location=from_location,
                to_location=to_location,
                warehouse=warehouse,
                document=document,
                document_type=document.kind,
                product_name=product.name,
                product_sku=product.sku,
                warehouse_name=warehouse.name,
                from_location_name=from_location.full_name if from_location else '',
                to_location_name=to_location.full_name if to_location else '',
                notes=notes,
                user=user,
                **fields,
            )

        logger.info(
            "ledger.append",
            extra={
                "movement_id": movement.pk,
                "product": product.sku,
                "type": str(movement_type),
                "qty": str(quantity_change),
                "from": from_location.pk if from_location else None,
                "to": to_location.pk if to_location else None,
                "document": document.reference_no,
            },
        )
        return movement

    @classmethod
    def list_movements(cls, product=None, warehouse=None, movement_type=None,
                       date_from=None, date_to=None, document=None):
        """
        Ledger entries, newest first (ties in insertion order).

        Args:
            product: Product or pk
            warehouse: Warehouse or pk. Also matches either endpoint.
            movement_type: receipt | delivery | transfer | adjustment
            date_from / date_to: inclusive bounds. A date compares whole
                days, a datetime compares instants.
            document: Document or pk
        """
        qs = StockMovement.objects.select_related(
            'product', 'warehouse', 'from_location', 'to_location', 'document',
        )

        if product is not None:
            qs = qs.filter(product=product)

        if warehouse is not None:
            qs = qs.filter(
                Q(warehouse=warehouse)
                | Q(from_location__warehouse=warehouse)
                | Q(to_location__warehouse=warehouse)
            ).distinct()

        if movement_type:
            qs = qs.filter(movement_type=movement_type)

        if document is not None:
            qs = qs.filter(document=document)

        if date_from is not None:
            qs = qs.filter(**_bound('gte', date_from))

        if date_to is not None:
            qs = qs.filter(**_bound('lte', date_to))

        return qs.order_by('-timestamp', 'pk')


def _bound(op: str, value) -> dict:
    if isinstance(value, datetime):
        return {f'timestamp__{op}': value}
    if isinstance(value, date):
        return {f'timestamp__date__{op}': value}
    raise ValidationError('INVALID_DATE', value=str(value))
