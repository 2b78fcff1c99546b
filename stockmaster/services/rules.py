"""
Movement rules — what each document kind does to stock when committed.

Each document kind is a variant with its own rule object. A rule only
answers two questions:

- Is this document complete enough to submit? (check_submittable)
- Which ledger movements does committing it produce? (plan)

The lifecycle engine (services.documents) is written once against this
contract. Per-location balance deltas are derived from planned movements
by endpoint_deltas(), the same function the projector uses to replay the
ledger, so live application and replay cannot disagree.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from stockmaster.exceptions import ValidationError
from stockmaster.models.enums import DocumentKind, MovementType

# Quantity columns are DecimalField(max_digits=12, decimal_places=3).
QUANTITY_DIGITS = 12
QUANTITY_PLACES = 3


class Direction(str, Enum):
    """Which endpoints a movement has."""
    INBOUND = 'inbound'     # to only
    OUTBOUND = 'outbound'   # from only
    INTERNAL = 'internal'   # from and to


def to_quantity(value, field: str = 'quantity', places: int = QUANTITY_PLACES, **context) -> Decimal:
    """
    Parse a signed quantity that fits a quantity column.

    Sign checks are left to the caller.

    Raises:
        ValidationError('INVALID_QUANTITY'): not a number, not finite,
            too large, or more decimal places than the column stores
    """
    try:
        quantity = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError('INVALID_QUANTITY', field=field, value=str(value), **context) from None
    if not quantity.is_finite() or abs(quantity) >= Decimal(10) ** (QUANTITY_DIGITS - places):
        raise ValidationError('INVALID_QUANTITY', field=field, value=str(value), **context)
    if quantity != quantity.quantize(Decimal(1).scaleb(-places)):
        raise ValidationError('INVALID_QUANTITY', field=field, value=str(value), **context)
    return quantity


def movement_direction(movement_type: str, quantity_change: Decimal) -> Direction:
    """
    Direction of a movement, from its type and signed quantity.

    Raises:
        ValidationError('ZERO_QUANTITY'): quantity_change is zero
        ValidationError('INVALID_DIRECTION'): sign contradicts the type
        ValidationError('UNKNOWN_KIND'): unknown movement type
    """
    if quantity_change == 0:
        raise ValidationError('ZERO_QUANTITY', movement_type=movement_type)

    if movement_type == MovementType.RECEIPT:
        if quantity_change < 0:
            raise ValidationError(
                'INVALID_DIRECTION', movement_type=movement_type,
                quantity_change=quantity_change,
            )
        return Direction.INBOUND

    if movement_type == MovementType.DELIVERY:
        if quantity_change > 0:
            raise ValidationError(
                'INVALID_DIRECTION', movement_type=movement_type,
                quantity_change=quantity_change,
            )
        return Direction.OUTBOUND

    if movement_type == MovementType.TRANSFER:
        if quantity_change < 0:
            raise ValidationError(
                'INVALID_DIRECTION', movement_type=movement_type,
                quantity_change=quantity_change,
            )
        return Direction.INTERNAL

    if movement_type == MovementType.ADJUSTMENT:
        return Direction.INBOUND if quantity_change > 0 else Direction.OUTBOUND

    raise ValidationError('UNKNOWN_KIND', kind=movement_type)


@dataclass(frozen=True)
class BalanceDelta:
    """Signed change to one StockByLocation coordinate."""

    product_id: int
    warehouse_id: int
    location_id: int
    delta: Decimal

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.product_id, self.warehouse_id, self.location_id)


@dataclass(frozen=True)
class PlannedMovement:
    """A ledger entry a commit is about to write."""

    product: object
    movement_type: str
    quantity_change: Decimal
    from_location: object = None
    to_location: object = None

    @property
    def product_id(self) -> int:
        return self.product.pk


def endpoint_deltas(movement) -> list[BalanceDelta]:
    """
    Per-location balance deltas implied by a movement.

    Works on StockMovement rows and PlannedMovement alike: the source
    endpoint loses |quantity_change|, the destination gains it.
    """
    amount = abs(movement.quantity_change)
    deltas = []
    if movement.from_location is not None:
        deltas.append(BalanceDelta(
            product_id=movement.product_id,
            warehouse_id=movement.from_location.warehouse_id,
            location_id=movement.from_location.pk,
            delta=-amount,
        ))
    if movement.to_location is not None:
        deltas.append(BalanceDelta(
            product_id=movement.product_id,
            warehouse_id=movement.to_location.warehouse_id,
            location_id=movement.to_location.pk,
            delta=amount,
        ))
    return deltas


def merge_deltas(deltas: Iterable[BalanceDelta]) -> dict[tuple[int, int, int], Decimal]:
    """Sum deltas per coordinate, dropping those that cancel out."""
    merged: dict[tuple[int, int, int], Decimal] = {}
    for d in deltas:
        merged[d.key] = merged.get(d.key, Decimal('0')) + d.delta
    return {key: value for key, value in merged.items() if value != 0}


def resolve_location(warehouse, location=None):
    """
    The location a document side refers to.

    Raises:
        ValidationError('LOCATION_MISMATCH'): location is in another warehouse
        ValidationError('NO_LOCATION'): no location given and warehouse has none
    """
    if location is not None:
        if location.warehouse_id != warehouse.pk:
            raise ValidationError(
                'LOCATION_MISMATCH',
                location=location.pk, warehouse=warehouse.pk,
            )
        return location
    primary = warehouse.primary_location
    if primary is None:
        raise ValidationError('NO_LOCATION', warehouse=warehouse.code)
    return primary


# ══════════════════════════════════════════════════════════════
# RULES
# ══════════════════════════════════════════════════════════════


class DocumentRule:
    """Base rule for documents with product lines."""

    kind: str = ''

    @property
    def movement_type(self) -> str:
        return self.kind

    def check_submittable(self, document) -> None:
        if not document.lines.exists():
            raise ValidationError('NO_LINES', reference_no=document.reference_no)

    def plan(self, document) -> list[PlannedMovement]:
        raise NotImplementedError


class ReceiptRule(DocumentRule):
    """+quantity per line into the receiving location."""

    kind = DocumentKind.RECEIPT

    def plan(self, document):
        to_location = resolve_location(document.warehouse, document.location)
        return [
            PlannedMovement(
                product=line.product,
                movement_type=self.movement_type,
                quantity_change=line.quantity,
                to_location=to_location,
            )
            for line in document.lines.select_related('product')
        ]


class DeliveryRule(DocumentRule):
    """-quantity per line out of the shipping location."""

    kind = DocumentKind.DELIVERY

    def plan(self, document):
        from_location = resolve_location(document.warehouse, document.location)
        return [
            PlannedMovement(
                product=line.product,
                movement_type=self.movement_type,
                quantity_change=-line.quantity,
                from_location=from_location,
            )
            for line in document.lines.select_related('product')
        ]


class TransferRule(DocumentRule):
    """One dual-location movement per line."""

    kind = DocumentKind.TRANSFER

    def endpoints(self, document):
        if document.to_warehouse_id is None:
            raise ValidationError('REQUIRED_FIELD', field='to_warehouse')
        from_location = resolve_location(document.warehouse, document.location)
        to_location = resolve_location(document.to_warehouse, document.to_location)
        if from_location.pk == to_location.pk:
            raise ValidationError('SAME_LOCATION', location=from_location.pk)
        return from_location, to_location

    def plan(self, document):
        from_location, to_location = self.endpoints(document)
        return [
            PlannedMovement(
                product=line.product,
                movement_type=self.movement_type,
                quantity_change=line.quantity,
                from_location=from_location,
                to_location=to_location,
            )
            for line in document.lines.select_related('product')
        ]


class AdjustmentRule(DocumentRule):
    """
    Single movement carrying counted - system.

    The engine refreshes document.system_quantity from the live balance
    before calling either method.
    """

    kind = DocumentKind.ADJUSTMENT

    def check_submittable(self, document):
        if document.counted_quantity is None:
            raise ValidationError('REQUIRED_FIELD', field='counted_quantity')
        if document.counted_quantity == document.system_quantity:
            raise ValidationError(
                'NO_DIFFERENCE',
                reference_no=document.reference_no,
                quantity=document.counted_quantity,
            )

    def plan(self, document):
        self.check_submittable(document)
        location = resolve_location(document.warehouse, document.location)
        delta = document.counted_quantity - document.system_quantity
        return [
            PlannedMovement(
                product=document.product,
                movement_type=self.movement_type,
                quantity_change=delta,
                to_location=location if delta > 0 else None,
                from_location=location if delta < 0 else None,
            )
        ]


RULES: dict[str, DocumentRule] = {
    rule.kind: rule
    for rule in (ReceiptRule(), DeliveryRule(), TransferRule(), AdjustmentRule())
}


def rule_for(kind: str) -> DocumentRule:
    try:
        return RULES[kind]
    except KeyError:
        raise ValidationError('UNKNOWN_KIND', kind=kind) from None
