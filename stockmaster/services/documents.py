"""
Document lifecycle — create, edit and transition stock documents.

The state machine is the same for every kind; what a kind does to stock
on commit lives in services.rules.

    DRAFT ──► WAITING ──► READY ──► DONE
      │  └───────┼──────────────────►│
      │          └──────────────────►│
      └──────────┴──────────┴──► CANCELED

Only the move to DONE has side effects, and it runs as one serialized
transaction: lock the document, lock every touched balance in key order,
check all of them, apply, append ledger entries, mark done.
"""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from stockmaster.conf import stockmaster_settings
from stockmaster.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from stockmaster.models.document import Document, DocumentLine, ReferenceSequence
from stockmaster.models.enums import DocumentKind, DocumentStatus
from stockmaster.services.balances import BalanceProjector
from stockmaster.services.catalog import Catalog
from stockmaster.services.ledger import StockLedger
from stockmaster.services.rules import endpoint_deltas, resolve_location, rule_for, to_quantity
from stockmaster.services.transactions import run_serialized

logger = logging.getLogger('stockmaster')


ALLOWED_TRANSITIONS = {
    DocumentStatus.DRAFT: frozenset({
        DocumentStatus.WAITING, DocumentStatus.DONE, DocumentStatus.CANCELED,
    }),
    DocumentStatus.WAITING: frozenset({
        DocumentStatus.READY, DocumentStatus.DONE, DocumentStatus.CANCELED,
    }),
    DocumentStatus.READY: frozenset({
        DocumentStatus.DONE, DocumentStatus.CANCELED,
    }),
    DocumentStatus.DONE: frozenset(),
    DocumentStatus.CANCELED: frozenset(),
}

_COMMON_FIELDS = frozenset({'date', 'notes', 'warehouse', 'location'})

EDITABLE_FIELDS = {
    DocumentKind.RECEIPT: _COMMON_FIELDS | {'partner_name'},
    DocumentKind.DELIVERY: _COMMON_FIELDS | {'partner_name'},
    DocumentKind.TRANSFER: _COMMON_FIELDS | {'to_warehouse', 'to_location'},
    DocumentKind.ADJUSTMENT: _COMMON_FIELDS | {'product', 'counted_quantity', 'reason'},
}

READ_ONLY_FIELDS = frozenset({
    'kind', 'reference_no', 'status', 'system_quantity', 'done_at',
    'created_at', 'updated_at',
})


class Documents:
    """
    Lifecycle engine for receipts, deliveries, transfers and adjustments.

    Usage:
        receipt = Documents.create(
            'receipt', warehouse=main, location=rack_a,
            partner_name='Tech Supplies Inc.',
            lines=[{'product': widget, 'quantity': Decimal('50')}],
        )
        Documents.transition(receipt, 'waiting')
        Documents.transition(receipt, 'done')
    """

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def get(cls, pk) -> Document:
        """
        Raises:
            NotFoundError('DOCUMENT_NOT_FOUND')
        """
        pk = getattr(pk, 'pk', pk)
        try:
            return Document.objects.select_related(
                'warehouse', 'location', 'to_warehouse', 'to_location', 'product',
            ).get(pk=pk)
        except (Document.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('DOCUMENT_NOT_FOUND', id=pk) from None

    @classmethod
    def get_by_reference(cls, reference_no: str) -> Document:
        try:
            return Document.objects.get(reference_no=reference_no)
        except Document.DoesNotExist:
            raise NotFoundError('DOCUMENT_NOT_FOUND', reference_no=reference_no) from None

    @classmethod
    def list(cls, kind=None, status=None, warehouse=None, search: str | None = None,
             product=None):
        """
        Documents with filters, newest date first.

        Args:
            kind: document kind
            status: one status or a list of statuses
            warehouse: matches source or destination warehouse
            search: reference number or partner name substring
            product: documents touching this product (lines or adjustment)
        """
        qs = Document.objects.select_related('warehouse', 'to_warehouse')
        if kind:
            qs = qs.filter(kind=kind)
        if status:
            if isinstance(status, str):
                qs = qs.filter(status=status)
            else:
                qs = qs.filter(status__in=list(status))
        if warehouse is not None:
            wh = getattr(warehouse, 'pk', warehouse)
            qs = qs.filter(Q(warehouse=wh) | Q(to_warehouse=wh))
        if search:
            qs = qs.filter(Q(reference_no__icontains=search) | Q(partner_name__icontains=search))
        if product is not None:
            prod = getattr(product, 'pk', product)
            qs = qs.filter(Q(lines__product=prod) | Q(product=prod)).distinct()
        return qs.order_by('-date', '-pk')

    # ══════════════════════════════════════════════════════════════
    # EDITING
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def create(cls, kind: str, *, lines: list[dict] | None = None,
               reference_no: str | None = None, **fields) -> Document:
        """
        Create a document in DRAFT.

        Args:
            kind: receipt | delivery | transfer | adjustment
            lines: [{'product': ..., 'quantity': ..., 'unit_price': ...}]
                (not for adjustments)
            reference_no: explicit reference (default: generated)
            **fields: header fields for the kind (see EDITABLE_FIELDS)

        Raises:
            ValidationError: unknown kind/field, missing or invalid data
            NotFoundError: a referenced product/warehouse/location is missing
            ConflictError('DUPLICATE_REFERENCE'): reference_no already used
        """
        if kind not in DocumentKind.values:
            raise ValidationError('UNKNOWN_KIND', kind=kind)
        kind = DocumentKind(kind)
        cls._check_fields(kind, fields, lines)

        with transaction.atomic():
            document = Document(kind=kind)
            cls._assign(document, fields)
            cls.prepare(document)
            line_rows = cls._build_lines(lines) if lines is not None else []

            if reference_no:
                if Document.objects.filter(reference_no=reference_no).exists():
                    raise ConflictError('DUPLICATE_REFERENCE', reference_no=reference_no)
                document.reference_no = reference_no
            else:
                document.reference_no = cls.next_reference(kind)

            try:
                with transaction.atomic():
                    document.save()
            except IntegrityError:
                raise ConflictError(
                    'DUPLICATE_REFERENCE', reference_no=document.reference_no,
                ) from None

            cls._save_lines(document, line_rows)

        logger.info(
            "document.create",
            extra={
                "document_id": document.pk,
                "reference_no": document.reference_no,
                "kind": str(kind),
                "lines": len(line_rows),
            },
        )
        return document

    @classmethod
    def update(cls, document, *, lines: list[dict] | None = None, **fields) -> Document:
        """
        Edit a document that is not yet done or canceled.

        Passing ``lines`` replaces all lines.

        Raises:
            InvalidTransitionError('DOCUMENT_LOCKED'): document is done/canceled
            ValidationError: read-only/unknown field, invalid data
        """
        with transaction.atomic():
            document = cls._lock(document)
            if document.is_locked:
                raise InvalidTransitionError(
                    'DOCUMENT_LOCKED',
                    reference_no=document.reference_no,
                    current=document.status,
                )
            cls._check_fields(document.kind, fields, lines)

            cls._assign(document, fields)
            cls.prepare(document)
            line_rows = cls._build_lines(lines) if lines is not None else None
            document.save()

            if line_rows is not None:
                document.lines.all().delete()
                cls._save_lines(document, line_rows)

        logger.info(
            "document.update",
            extra={
                "reference_no": document.reference_no,
                "fields": sorted(fields),
                "lines_replaced": lines is not None,
            },
        )
        return document

    @classmethod
    def delete(cls, document) -> None:
        """
        Delete a DRAFT or CANCELED document.

        Raises:
            InvalidTransitionError: document is waiting, ready or done
        """
        with transaction.atomic():
            document = cls._lock(document)
            if document.status not in (DocumentStatus.DRAFT, DocumentStatus.CANCELED):
                raise InvalidTransitionError(
                    'DOCUMENT_LOCKED' if document.is_locked else 'INVALID_TRANSITION',
                    reference_no=document.reference_no,
                    current=document.status,
                    target='deleted',
                )
            reference_no = document.reference_no
            document.delete()
        logger.info("document.delete", extra={"reference_no": reference_no})

    @classmethod
    def prepare(cls, document: Document) -> None:
        """
        Validate header fields and refresh derived values before a save.

        Adjustments get their system quantity re-read from the live balance
        and default to the warehouse primary location.
        """
        cls._validate_header(document)
        if document.kind == DocumentKind.ADJUSTMENT:
            cls._refresh_system_quantity(document)
        document.refresh_snapshots()

    # ══════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def transition(cls, document, status: str, user=None) -> Document:
        """
        Move a document to a new status.

        Transitions:
            DRAFT   → WAITING | DONE | CANCELED
            WAITING → READY | DONE | CANCELED
            READY   → DONE | CANCELED

        Raises:
            InvalidTransitionError('INVALID_TRANSITION'): not allowed from current status
            ValidationError('NO_LINES' | 'NO_DIFFERENCE'): document incomplete
            InsufficientStockError: commit would drive a balance negative
            OperationTimedOut / OperationFailed: database trouble, nothing written
        """
        if status not in DocumentStatus.values:
            raise InvalidTransitionError('INVALID_TRANSITION', target=status)
        status = DocumentStatus(status)

        if status == DocumentStatus.DONE:
            return cls._commit(document, user=user)

        with transaction.atomic():
            document = cls._lock(document)
            previous = document.status
            cls._check_transition(document, status)

            update_fields = ['status', 'updated_at']
            if status == DocumentStatus.WAITING:
                if document.kind == DocumentKind.ADJUSTMENT:
                    cls._refresh_system_quantity(document)
                    update_fields.append('system_quantity')
                rule_for(document.kind).check_submittable(document)

            document.status = status
            document.save(update_fields=update_fields)

        logger.info(
            f"document.{status.value}",
            extra={
                "reference_no": document.reference_no,
                "from": previous,
                "to": status.value,
            },
        )
        return document

    @classmethod
    def _commit(cls, document, user=None) -> Document:
        """
        Transition to DONE: the only place stock changes.

        Concurrency:
            - run_serialized(): one atomic unit, retried on deadlock
            - select_for_update() on the document, re-checking status after lock
            - Balance rows then products locked in ascending key order
        """
        pk = getattr(document, 'pk', document)

        def operation():
            doc = cls._lock(pk)
            cls._check_transition(doc, DocumentStatus.DONE)
            cls._resolve_references(doc)
            rule = rule_for(doc.kind)

            if doc.kind == DocumentKind.ADJUSTMENT:
                location = resolve_location(doc.warehouse, doc.location)
                row = BalanceProjector.locked_balance(doc.product, doc.warehouse, location)
                doc.system_quantity = row.quantity
            rule.check_submittable(doc)

            planned = rule.plan(doc)
            BalanceProjector.apply_deltas(
                delta for movement in planned for delta in endpoint_deltas(movement)
            )

            now = timezone.now()
            movements = [
                StockLedger.append_movement(
                    product=movement.product,
                    movement_type=movement.movement_type,
                    quantity_change=movement.quantity_change,
                    from_location=movement.from_location,
                    to_location=movement.to_location,
                    warehouse=doc.warehouse,
                    document=doc,
                    timestamp=now,
                    notes=doc.notes,
                    user=user,
                )
                for movement in planned
            ]

            for line in doc.lines.select_related('product'):
                line.refresh_snapshots()
                line.save(update_fields=['product_name', 'product_sku', 'unit_of_measure'])
            doc.refresh_snapshots()
            doc.status = DocumentStatus.DONE
            doc.done_at = now
            doc.save()
            return doc, movements

        reference = getattr(document, 'reference_no', pk)
        document, movements = run_serialized(operation, label=f"commit {reference}")

        logger.info(
            "document.done",
            extra={
                "reference_no": document.reference_no,
                "kind": document.kind,
                "movements": [m.pk for m in movements],
            },
        )
        return document

    # ══════════════════════════════════════════════════════════════
    # INTERNALS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def _lock(cls, document) -> Document:
        pk = getattr(document, 'pk', document)
        try:
            return Document.objects.select_for_update().get(pk=pk)
        except (Document.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('DOCUMENT_NOT_FOUND', id=pk) from None

    @classmethod
    def _check_transition(cls, document, status) -> None:
        if status not in ALLOWED_TRANSITIONS[DocumentStatus(document.status)]:
            raise InvalidTransitionError(
                'INVALID_TRANSITION',
                reference_no=document.reference_no,
                current=document.status,
                target=str(status),
            )

    @classmethod
    def _check_fields(cls, kind, fields: dict, lines) -> None:
        allowed = EDITABLE_FIELDS[kind]
        for name in fields:
            if name in READ_ONLY_FIELDS:
                raise ValidationError('READ_ONLY_FIELD', field=name)
            if name not in allowed:
                raise ValidationError('UNKNOWN_FIELD', field=name, kind=str(kind))
        if lines is not None and kind == DocumentKind.ADJUSTMENT:
            raise ValidationError('UNKNOWN_FIELD', field='lines', kind=str(kind))

    @classmethod
    def _assign(cls, document: Document, fields: dict) -> None:
        """Set header fields, resolving catalog references."""
        for name, value in fields.items():
            if name in ('warehouse', 'to_warehouse'):
                value = Catalog.get_warehouse(value) if value is not None else None
            elif name in ('location', 'to_location'):
                value = Catalog.get_location(value) if value is not None else None
            elif name == 'product':
                value = Catalog.get_product(value) if value is not None else None
            elif name == 'counted_quantity':
                value = to_quantity(value, name) if value is not None else None
            elif name == 'date' and value is None:
                value = timezone.now()
            elif value is None:
                value = ''
            setattr(document, name, value)

    @classmethod
    def _validate_header(cls, document: Document) -> None:
        if document.warehouse_id is None:
            raise ValidationError('REQUIRED_FIELD', field='warehouse')
        if not document.warehouse.is_active:
            raise ValidationError('WAREHOUSE_INACTIVE', warehouse=document.warehouse.code)
        if document.location_id is not None:
            resolve_location(document.warehouse, document.location)

        if document.kind == DocumentKind.TRANSFER:
            if document.to_warehouse_id is None:
                raise ValidationError('REQUIRED_FIELD', field='to_warehouse')
            if not document.to_warehouse.is_active:
                raise ValidationError('WAREHOUSE_INACTIVE', warehouse=document.to_warehouse.code)
            if document.to_location_id is not None:
                resolve_location(document.to_warehouse, document.to_location)
            if (
                document.location_id is not None
                and document.location_id == document.to_location_id
            ):
                raise ValidationError('SAME_LOCATION', location=document.location_id)

        if document.kind == DocumentKind.ADJUSTMENT:
            if document.product_id is None:
                raise ValidationError('REQUIRED_FIELD', field='product')
            if not document.product.is_active:
                raise ValidationError('PRODUCT_INACTIVE', product=document.product.sku)
            if document.counted_quantity is None:
                raise ValidationError('REQUIRED_FIELD', field='counted_quantity')
            if document.counted_quantity < 0:
                raise ValidationError(
                    'INVALID_QUANTITY', field='counted_quantity',
                    value=document.counted_quantity,
                )
            if document.location_id is None:
                document.location = resolve_location(document.warehouse)

    @classmethod
    def _build_lines(cls, lines: list[dict]) -> list[DocumentLine]:
        """Validate line payloads into unsaved DocumentLine rows."""
        rows = []
        for index, data in enumerate(lines):
            unknown = set(data) - {'product', 'quantity', 'unit_price'}
            if unknown:
                raise ValidationError('UNKNOWN_FIELD', field=sorted(unknown)[0], line=index)
            if data.get('product') is None:
                raise ValidationError('REQUIRED_FIELD', field='product', line=index)
            if data.get('quantity') is None:
                raise ValidationError('REQUIRED_FIELD', field='quantity', line=index)

            product = Catalog.get_product(data['product'])
            if not product.is_active:
                raise ValidationError('PRODUCT_INACTIVE', product=product.sku, line=index)

            quantity = to_quantity(data['quantity'], 'quantity', line=index)
            if quantity <= 0:
                raise ValidationError('INVALID_QUANTITY', line=index, quantity=quantity)

            unit_price = data.get('unit_price')
            if unit_price is not None:
                unit_price = to_quantity(unit_price, 'unit_price', places=2, line=index)
                if unit_price < 0:
                    raise ValidationError('INVALID_QUANTITY', field='unit_price', line=index)

            row = DocumentLine(product=product, quantity=quantity, unit_price=unit_price)
            row.refresh_snapshots()
            rows.append(row)
        return rows

    @classmethod
    def _save_lines(cls, document: Document, rows: list[DocumentLine]) -> None:
        for row in rows:
            row.document = document
        DocumentLine.objects.bulk_create(rows)

    @classmethod
    def _refresh_system_quantity(cls, document: Document) -> None:
        location = resolve_location(document.warehouse, document.location)
        document.system_quantity = BalanceProjector.get_balance(
            document.product, document.warehouse, location,
        )

    @classmethod
    def _resolve_references(cls, document: Document) -> None:
        """Re-read every catalog row the commit depends on."""
        document.warehouse = Catalog.get_warehouse(document.warehouse_id)
        if document.location_id is not None:
            document.location = Catalog.get_location(document.location_id)
        if document.to_warehouse_id is not None:
            document.to_warehouse = Catalog.get_warehouse(document.to_warehouse_id)
        if document.to_location_id is not None:
            document.to_location = Catalog.get_location(document.to_location_id)
        if document.product_id is not None:
            document.product = Catalog.get_product(document.product_id)

    @classmethod
    def next_reference(cls, kind) -> str:
        """
        Draw the next <PREFIX>-<YEAR>-<seq> reference.

        Skips values already taken by explicitly supplied references.
        """
        prefix = stockmaster_settings.REFERENCE_PREFIXES[str(kind)]
        padding = stockmaster_settings.REFERENCE_PADDING
        year = timezone.localdate().year

        with transaction.atomic():
            sequence, _ = ReferenceSequence.objects.select_for_update().get_or_create(
                prefix=prefix, year=year,
            )
            while True:
                sequence.last_value += 1
                reference_no = f"{prefix}-{year}-{sequence.last_value:0{padding}d}"
                if not Document.objects.filter(reference_no=reference_no).exists():
                    break
            sequence.save(update_fields=['last_value'])
        return reference_no

