"""
Tests for the document lifecycle engine.
"""

from decimal import Decimal

import pytest
from django.utils import timezone

from stockmaster import inventory
from stockmaster.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from stockmaster.models import Document, DocumentStatus, StockMovement
from stockmaster.services.balances import BalanceProjector
from stockmaster.services.catalog import Catalog
from stockmaster.services.documents import Documents


pytestmark = pytest.mark.django_db


class TestCreate:
    """Tests for Documents.create()."""

    def test_receipt_in_draft_with_reference(self, main_warehouse, widget):
        receipt = Documents.create(
            'receipt', warehouse=main_warehouse, partner_name='Tech Supplies Inc.',
            lines=[{'product': widget, 'quantity': 50, 'unit_price': '2.50'}],
        )

        year = timezone.localdate().year
        assert receipt.status == DocumentStatus.DRAFT
        assert receipt.reference_no == f'REC-{year}-001'
        assert receipt.warehouse_name == 'Main Warehouse'
        line = receipt.lines.get()
        assert line.quantity == Decimal('50')
        assert line.unit_price == Decimal('2.50')
        assert line.product_sku == 'WIDGET-01'

    def test_references_increment_per_kind(self, main_warehouse, widget):
        lines = [{'product': widget, 'quantity': 1}]
        first = Documents.create('receipt', warehouse=main_warehouse, lines=lines)
        second = Documents.create('receipt', warehouse=main_warehouse, lines=lines)
        delivery = Documents.create('delivery', warehouse=main_warehouse, lines=lines)

        assert first.reference_no.endswith('-001')
        assert second.reference_no.endswith('-002')
        assert delivery.reference_no.startswith('DEL-')
        assert delivery.reference_no.endswith('-001')

    def test_generated_reference_skips_explicit_one(self, main_warehouse, widget):
        year = timezone.localdate().year
        Documents.create('receipt', warehouse=main_warehouse, reference_no=f'REC-{year}-001')

        receipt = Documents.create('receipt', warehouse=main_warehouse)

        assert receipt.reference_no == f'REC-{year}-002'

    def test_custom_prefix(self, settings, main_warehouse):
        settings.STOCKMASTER = {'REFERENCE_PREFIXES': {'receipt': 'IN'}, 'REFERENCE_PADDING': 5}

        receipt = Documents.create('receipt', warehouse=main_warehouse)
        transfer = Documents.create('transfer', warehouse=main_warehouse,
                                    to_warehouse=main_warehouse,
                                    to_location=main_warehouse.locations.get(name='Rack B'))

        assert receipt.reference_no.startswith('IN-')
        assert receipt.reference_no.endswith('-00001')
        assert transfer.reference_no.startswith('TRF-')

    def test_duplicate_explicit_reference(self, main_warehouse):
        Documents.create('receipt', warehouse=main_warehouse, reference_no='REC-CUSTOM')

        with pytest.raises(ConflictError) as exc:
            Documents.create('receipt', warehouse=main_warehouse, reference_no='REC-CUSTOM')

        assert exc.value.code == 'DUPLICATE_REFERENCE'

    def test_unknown_kind(self, main_warehouse):
        with pytest.raises(ValidationError) as exc:
            Documents.create('scrap', warehouse=main_warehouse)

        assert exc.value.code == 'UNKNOWN_KIND'

    def test_field_not_applicable_to_kind(self, main_warehouse, store_warehouse):
        with pytest.raises(ValidationError) as exc:
            Documents.create('receipt', warehouse=main_warehouse, to_warehouse=store_warehouse)

        assert exc.value.code == 'UNKNOWN_FIELD'

    def test_read_only_field(self, main_warehouse):
        with pytest.raises(ValidationError) as exc:
            Documents.create('receipt', warehouse=main_warehouse, status='done')

        assert exc.value.code == 'READ_ONLY_FIELD'

    def test_adjustment_takes_no_lines(self, main_warehouse, widget):
        with pytest.raises(ValidationError) as exc:
            Documents.create(
                'adjustment', warehouse=main_warehouse, product=widget,
                counted_quantity=1, lines=[{'product': widget, 'quantity': 1}],
            )

        assert exc.value.code == 'UNKNOWN_FIELD'

    @pytest.mark.parametrize('quantity', [0, -5])
    def test_line_quantity_must_be_positive(self, main_warehouse, widget, quantity):
        with pytest.raises(ValidationError) as exc:
            Documents.create('receipt', warehouse=main_warehouse,
                             lines=[{'product': widget, 'quantity': quantity}])

        assert exc.value.code == 'INVALID_QUANTITY'
        assert Document.objects.count() == 0

    @pytest.mark.parametrize('quantity', ['NaN', '-Infinity', 'Infinity', '10000000000', '0.0001', 'ten'])
    def test_line_quantity_must_fit(self, main_warehouse, widget, quantity):
        with pytest.raises(ValidationError) as exc:
            Documents.create('receipt', warehouse=main_warehouse,
                             lines=[{'product': widget, 'quantity': quantity}])

        assert exc.value.code == 'INVALID_QUANTITY'
        assert Document.objects.count() == 0

    def test_largest_line_quantity(self, main_warehouse, widget):
        receipt = Documents.create('receipt', warehouse=main_warehouse,
                                   lines=[{'product': widget, 'quantity': '999999999.999'}])

        assert receipt.lines.get().quantity == Decimal('999999999.999')

    @pytest.mark.parametrize('unit_price', ['NaN', '-1', '1.005'])
    def test_malformed_unit_price(self, main_warehouse, widget, unit_price):
        with pytest.raises(ValidationError) as exc:
            Documents.create('receipt', warehouse=main_warehouse,
                             lines=[{'product': widget, 'quantity': 1, 'unit_price': unit_price}])

        assert exc.value.code == 'INVALID_QUANTITY'
        assert exc.value.data['field'] == 'unit_price'

    @pytest.mark.parametrize('counted', ['NaN', 'Infinity', '10000000000'])
    def test_malformed_counted_quantity(self, main_warehouse, widget, counted):
        with pytest.raises(ValidationError) as exc:
            Documents.create('adjustment', warehouse=main_warehouse, product=widget,
                             counted_quantity=counted)

        assert exc.value.code == 'INVALID_QUANTITY'
        assert Document.objects.count() == 0

    def test_location_from_other_warehouse(self, main_warehouse, shelf_1):
        with pytest.raises(ValidationError) as exc:
            Documents.create('receipt', warehouse=main_warehouse, location=shelf_1)

        assert exc.value.code == 'LOCATION_MISMATCH'

    def test_archived_warehouse(self, main_warehouse):
        Catalog.archive_warehouse(main_warehouse)

        with pytest.raises(ValidationError) as exc:
            Documents.create('receipt', warehouse=main_warehouse)

        assert exc.value.code == 'WAREHOUSE_INACTIVE'

    def test_inactive_product(self, main_warehouse, widget):
        Catalog.update_product(widget, is_active=False)

        with pytest.raises(ValidationError) as exc:
            Documents.create('receipt', warehouse=main_warehouse,
                             lines=[{'product': widget, 'quantity': 1}])

        assert exc.value.code == 'PRODUCT_INACTIVE'

    def test_missing_product_reference(self, main_warehouse):
        with pytest.raises(NotFoundError) as exc:
            Documents.create('receipt', warehouse=main_warehouse,
                             lines=[{'product': 99999, 'quantity': 1}])

        assert exc.value.code == 'PRODUCT_NOT_FOUND'

    def test_transfer_to_same_location(self, main_warehouse, rack_a):
        with pytest.raises(ValidationError) as exc:
            Documents.create('transfer', warehouse=main_warehouse, location=rack_a,
                             to_warehouse=main_warehouse, to_location=rack_a)

        assert exc.value.code == 'SAME_LOCATION'

    def test_adjustment_reads_system_quantity(self, receive, main_warehouse, widget):
        receive(widget, 50, main_warehouse)

        adjustment = Documents.create('adjustment', warehouse=main_warehouse,
                                      product=widget, counted_quantity=Decimal('25'),
                                      reason='Damaged')

        assert adjustment.system_quantity == Decimal('50')
        assert adjustment.difference == Decimal('-25')
        assert adjustment.location.name == 'Rack A'


class TestUpdate:
    """Tests for Documents.update()."""

    def test_replace_lines(self, main_warehouse, widget, gadget):
        receipt = Documents.create('receipt', warehouse=main_warehouse,
                                   lines=[{'product': widget, 'quantity': 1}])

        Documents.update(receipt, partner_name='Acme', lines=[
            {'product': gadget, 'quantity': 4},
            {'product': widget, 'quantity': 2},
        ])

        receipt.refresh_from_db()
        assert receipt.partner_name == 'Acme'
        assert [(line.product_sku, line.quantity) for line in receipt.lines.all()] == [
            ('GADGET-01', Decimal('4')),
            ('WIDGET-01', Decimal('2')),
        ]

    def test_reference_never_changes(self, main_warehouse, rack_b):
        receipt = Documents.create('receipt', warehouse=main_warehouse)

        updated = Documents.update(receipt, location=rack_b, notes='dock 2')

        assert updated.reference_no == receipt.reference_no

    def test_done_document_is_locked(self, receive, main_warehouse, widget):
        receipt = receive(widget, 5, main_warehouse)

        with pytest.raises(InvalidTransitionError) as exc:
            Documents.update(receipt, notes='late edit')

        assert exc.value.code == 'DOCUMENT_LOCKED'
        assert exc.value.current == 'done'

    def test_canceled_document_is_locked(self, main_warehouse, widget):
        receipt = Documents.create('receipt', warehouse=main_warehouse)
        Documents.transition(receipt, 'canceled')

        with pytest.raises(InvalidTransitionError):
            Documents.update(receipt, lines=[{'product': widget, 'quantity': 1}])


class TestTransitions:
    """State machine rules."""

    @pytest.mark.parametrize('path', [
        ['waiting', 'ready', 'done'],
        ['waiting', 'done'],
        ['done'],
        ['waiting', 'ready', 'canceled'],
        ['canceled'],
    ])
    def test_allowed_paths(self, main_warehouse, widget, path):
        receipt = Documents.create('receipt', warehouse=main_warehouse,
                                   lines=[{'product': widget, 'quantity': 1}])

        for status in path:
            receipt = Documents.transition(receipt, status)

        assert receipt.status == path[-1]

    @pytest.mark.parametrize('path, target', [
        ([], 'ready'),
        ([], 'draft'),
        (['waiting'], 'waiting'),
        (['waiting'], 'draft'),
        (['canceled'], 'done'),
        (['done'], 'canceled'),
        (['done'], 'done'),
        ([], 'archived'),
    ])
    def test_rejected_transitions(self, main_warehouse, widget, path, target):
        receipt = Documents.create('receipt', warehouse=main_warehouse,
                                   lines=[{'product': widget, 'quantity': 1}])
        for status in path:
            receipt = Documents.transition(receipt, status)

        with pytest.raises(InvalidTransitionError) as exc:
            Documents.transition(receipt, target)

        assert exc.value.code == 'INVALID_TRANSITION'

    def test_submit_without_lines(self, main_warehouse):
        receipt = Documents.create('receipt', warehouse=main_warehouse)

        with pytest.raises(ValidationError) as exc:
            Documents.transition(receipt, 'waiting')

        assert exc.value.code == 'NO_LINES'

    def test_cancel_has_no_stock_effect(self, main_warehouse, widget):
        receipt = Documents.create('receipt', warehouse=main_warehouse,
                                   lines=[{'product': widget, 'quantity': 10}])

        inventory.cancel(receipt)

        assert BalanceProjector.get(widget) == Decimal('0')
        assert StockMovement.objects.count() == 0


class TestCommitScenarios:
    """End-to-end commits for every document kind."""

    def test_receipt_adds_stock(self, main_warehouse, rack_a, widget, user):
        receipt = Documents.create(
            'receipt', warehouse=main_warehouse, location=rack_a,
            partner_name='Tech Supplies Inc.',
            lines=[{'product': widget, 'quantity': 50}],
        )

        receipt = inventory.commit(receipt, user=user)

        widget.refresh_from_db()
        movement = StockMovement.objects.get()
        assert receipt.status == DocumentStatus.DONE
        assert receipt.done_at is not None
        assert BalanceProjector.get_balance(widget, main_warehouse, rack_a) == Decimal('50')
        assert widget.total_stock == Decimal('50')
        assert movement.quantity_change == Decimal('50')
        assert movement.to_location == rack_a
        assert movement.from_location is None
        assert movement.document == receipt
        assert movement.user == user

    def test_transfer_moves_stock(self, receive, main_warehouse, rack_a,
                                  store_warehouse, shelf_1, widget):
        receive(widget, 50, main_warehouse, rack_a)
        transfer = Documents.create(
            'transfer', warehouse=main_warehouse, location=rack_a,
            to_warehouse=store_warehouse, to_location=shelf_1,
            lines=[{'product': widget, 'quantity': 20}],
        )

        inventory.commit(transfer)

        widget.refresh_from_db()
        movement = StockMovement.objects.get(movement_type='transfer')
        assert BalanceProjector.get_balance(widget, main_warehouse, rack_a) == Decimal('30')
        assert BalanceProjector.get_balance(widget, store_warehouse, shelf_1) == Decimal('20')
        assert widget.total_stock == Decimal('50')
        assert movement.quantity_change == Decimal('20')
        assert movement.net_change == Decimal('0')
        assert (movement.from_location, movement.to_location) == (rack_a, shelf_1)

    def test_transfer_drains_source(self, receive, main_warehouse, rack_a,
                                    store_warehouse, shelf_1, widget):
        receive(widget, 20, main_warehouse, rack_a)
        transfer = Documents.create(
            'transfer', warehouse=main_warehouse, location=rack_a,
            to_warehouse=store_warehouse, to_location=shelf_1,
            lines=[{'product': widget, 'quantity': 20}],
        )
        transfer = Documents.transition(transfer, 'waiting')
        transfer = Documents.transition(transfer, 'ready')

        inventory.commit(transfer)

        assert BalanceProjector.get_balance(widget, main_warehouse, rack_a) == Decimal('0')
        assert BalanceProjector.get_balance(widget, store_warehouse, shelf_1) == Decimal('20')
        assert StockMovement.objects.filter(document=transfer).count() == 1

    def test_receipt_through_waiting(self, main_warehouse, rack_b, widget):
        receipt = Documents.create('receipt', warehouse=main_warehouse, location=rack_b,
                                   lines=[{'product': widget, 'quantity': 50}])
        receipt = Documents.transition(receipt, 'waiting')

        Documents.transition(receipt, 'done')

        movement = StockMovement.objects.get()
        assert (movement.movement_type, movement.to_location) == ('receipt', rack_b)
        assert BalanceProjector.get_balance(widget, main_warehouse, rack_b) == Decimal('50')

    def test_delivery_beyond_stock_fails_without_effect(self, receive, main_warehouse,
                                                        rack_a, widget):
        receive(widget, 25, main_warehouse, rack_a)
        delivery = Documents.create(
            'delivery', warehouse=main_warehouse, location=rack_a,
            partner_name='Retail Store',
            lines=[{'product': widget, 'quantity': 30}],
        )

        with pytest.raises(InsufficientStockError) as exc:
            inventory.commit(delivery)

        delivery.refresh_from_db()
        widget.refresh_from_db()
        assert exc.value.shortages == [{
            'product_id': widget.pk,
            'warehouse_id': main_warehouse.pk,
            'location_id': rack_a.pk,
            'available': Decimal('25'),
            'requested': Decimal('30'),
        }]
        assert delivery.status == DocumentStatus.DRAFT
        assert BalanceProjector.get_balance(widget, main_warehouse, rack_a) == Decimal('25')
        assert widget.total_stock == Decimal('25')
        assert StockMovement.objects.filter(movement_type='delivery').count() == 0

    def test_delivery_within_stock(self, receive, main_warehouse, widget):
        receive(widget, 25, main_warehouse)
        delivery = Documents.create('delivery', warehouse=main_warehouse,
                                    lines=[{'product': widget, 'quantity': 25}])

        inventory.commit(delivery)

        movement = StockMovement.objects.get(movement_type='delivery')
        assert movement.quantity_change == Decimal('-25')
        assert BalanceProjector.get(widget) == Decimal('0')

    def test_adjustment_applies_difference(self, receive, main_warehouse, rack_a, widget):
        receive(widget, 50, main_warehouse, rack_a)
        adjustment = Documents.create(
            'adjustment', warehouse=main_warehouse, location=rack_a,
            product=widget, counted_quantity=Decimal('25'), reason='Damaged',
        )

        adjustment = inventory.commit(adjustment)

        movement = StockMovement.objects.get(movement_type='adjustment')
        assert movement.quantity_change == Decimal('-25')
        assert movement.from_location == rack_a
        assert adjustment.system_quantity == Decimal('50')
        assert BalanceProjector.get_balance(widget, main_warehouse, rack_a) == Decimal('25')

    def test_adjustment_uses_live_balance_at_commit(self, receive, main_warehouse, widget):
        receive(widget, 50, main_warehouse)
        adjustment = Documents.create('adjustment', warehouse=main_warehouse,
                                      product=widget, counted_quantity=Decimal('40'))
        receive(widget, 10, main_warehouse)

        adjustment = inventory.commit(adjustment)

        movement = StockMovement.objects.get(movement_type='adjustment')
        assert adjustment.system_quantity == Decimal('60')
        assert movement.quantity_change == Decimal('-20')
        assert BalanceProjector.get(widget) == Decimal('40')

    def test_adjustment_upward_from_empty(self, main_warehouse, widget):
        adjustment = Documents.create('adjustment', warehouse=main_warehouse,
                                      product=widget, counted_quantity=Decimal('7'))

        inventory.commit(adjustment)

        movement = StockMovement.objects.get()
        assert movement.to_location is not None
        assert movement.quantity_change == Decimal('7')

    def test_adjustment_without_difference(self, receive, main_warehouse, widget):
        receive(widget, 5, main_warehouse)
        adjustment = Documents.create('adjustment', warehouse=main_warehouse,
                                      product=widget, counted_quantity=Decimal('5'))

        with pytest.raises(ValidationError) as exc:
            inventory.commit(adjustment)

        assert exc.value.code == 'NO_DIFFERENCE'

    def test_commit_without_lines(self, main_warehouse):
        receipt = Documents.create('receipt', warehouse=main_warehouse)

        with pytest.raises(ValidationError) as exc:
            inventory.commit(receipt)

        assert exc.value.code == 'NO_LINES'

    def test_movements_share_timestamp(self, main_warehouse, widget, gadget):
        receipt = Documents.create('receipt', warehouse=main_warehouse, lines=[
            {'product': widget, 'quantity': 1},
            {'product': gadget, 'quantity': 2},
        ])

        inventory.commit(receipt)

        timestamps = set(StockMovement.objects.values_list('timestamp', flat=True))
        assert len(timestamps) == 1

    def test_multi_line_shortage_rolls_back_everything(self, receive, main_warehouse,
                                                       widget, gadget):
        receive(widget, 10, main_warehouse)
        delivery = Documents.create('delivery', warehouse=main_warehouse, lines=[
            {'product': widget, 'quantity': 5},
            {'product': gadget, 'quantity': 1},
        ])

        with pytest.raises(InsufficientStockError):
            inventory.commit(delivery)

        assert BalanceProjector.get(widget) == Decimal('10')
        assert StockMovement.objects.filter(movement_type='delivery').count() == 0


class TestSnapshots:
    """Committed documents keep the names current at commit time."""

    def test_rename_after_commit(self, receive, main_warehouse, widget):
        receipt = receive(widget, 5, main_warehouse)

        Catalog.update_warehouse(main_warehouse, name='Renamed Warehouse')
        Catalog.update_product(widget, name='Widget Pro')

        receipt.refresh_from_db()
        movement = StockMovement.objects.get()
        assert receipt.warehouse_name == 'Main Warehouse'
        assert receipt.lines.get().product_name == 'Widget'
        assert movement.product_name == 'Widget'
        assert movement.warehouse_name == 'Main Warehouse'


class TestQueries:
    """Tests for get / list / delete."""

    def test_get_missing(self):
        with pytest.raises(NotFoundError) as exc:
            Documents.get(12345)

        assert exc.value.code == 'DOCUMENT_NOT_FOUND'

    def test_get_by_reference(self, main_warehouse):
        receipt = Documents.create('receipt', warehouse=main_warehouse)

        assert Documents.get_by_reference(receipt.reference_no) == receipt

    def test_list_filters(self, main_warehouse, store_warehouse, widget):
        receipt = Documents.create('receipt', warehouse=main_warehouse,
                                   partner_name='Tech Supplies Inc.',
                                   lines=[{'product': widget, 'quantity': 1}])
        transfer = Documents.create('transfer', warehouse=main_warehouse,
                                    to_warehouse=store_warehouse)
        Documents.transition(transfer, 'canceled')

        assert list(Documents.list(kind='receipt')) == [receipt]
        assert list(Documents.list(status='canceled')) == [transfer]
        assert list(Documents.list(warehouse=store_warehouse)) == [transfer]
        assert list(Documents.list(search='tech')) == [receipt]
        assert list(Documents.list(product=widget)) == [receipt]

    def test_delete_draft(self, main_warehouse, widget):
        receipt = Documents.create('receipt', warehouse=main_warehouse,
                                   lines=[{'product': widget, 'quantity': 1}])

        Documents.delete(receipt)

        assert not Document.objects.exists()

    def test_delete_done_rejected(self, receive, main_warehouse, widget):
        receipt = receive(widget, 1, main_warehouse)

        with pytest.raises(InvalidTransitionError) as exc:
            Documents.delete(receipt)

        assert exc.value.code == 'DOCUMENT_LOCKED'
