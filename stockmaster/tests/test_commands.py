"""
Tests for the rebuild_balances command and admin wiring.
"""

from decimal import Decimal
from io import StringIO

import pytest
from django.contrib import admin
from django.core.management import call_command
from django.core.management.base import CommandError
from django.forms import modelform_factory
from django.test import RequestFactory

from stockmaster.admin import DocumentAdmin, DocumentAdminForm, DocumentLineInline
from stockmaster.models import (
    Document,
    DocumentStatus,
    Product,
    StockByLocation,
    StockMovement,
    Warehouse,
)
from stockmaster.services.balances import BalanceProjector
from stockmaster.services.documents import Documents
from stockmaster.services.ledger import StockLedger


pytestmark = pytest.mark.django_db


class TestRebuildBalancesCommand:
    """Tests for `manage.py rebuild_balances`."""

    def test_clean(self, receive, widget, main_warehouse):
        receive(widget, 5, main_warehouse)
        out = StringIO()

        call_command('rebuild_balances', stdout=out)

        assert 'Balances match the ledger' in out.getvalue()

    def test_dry_run_reports_without_fixing(self, receive, widget, main_warehouse):
        receive(widget, 5, main_warehouse)
        StockByLocation.objects.filter(product=widget).update(quantity=Decimal('1'))
        out = StringIO()

        call_command('rebuild_balances', '--dry-run', stdout=out)

        assert 'dry run' in out.getvalue()
        assert BalanceProjector.get(widget) == Decimal('1')

    def test_fix_single_sku(self, receive, widget, gadget, main_warehouse):
        receive(widget, 5, main_warehouse)
        receive(gadget, 3, main_warehouse)
        StockByLocation.objects.update(quantity=Decimal('0'))
        Product.objects.update(total_stock=Decimal('0'))
        out = StringIO()

        call_command('rebuild_balances', '--sku', 'WIDGET-01', stdout=out)

        assert 'fixed' in out.getvalue()
        assert BalanceProjector.get(widget) == Decimal('5')
        assert BalanceProjector.get(gadget) == Decimal('0')

    def test_unknown_sku(self):
        with pytest.raises(CommandError):
            call_command('rebuild_balances', '--sku', 'NOPE', stdout=StringIO())

    def test_negative_replay_is_reported(self, widget, main_warehouse, rack_a):
        delivery = Documents.create('delivery', warehouse=main_warehouse,
                                    lines=[{'product': widget, 'quantity': 4}])
        StockLedger.append_movement(
            product=widget, movement_type='delivery', quantity_change=Decimal('-4'),
            from_location=rack_a, warehouse=main_warehouse, document=delivery,
        )

        with pytest.raises(CommandError, match='NEGATIVE_REPLAY'):
            call_command('rebuild_balances', stdout=StringIO())

        assert not StockByLocation.objects.exists()


class TestAdmin:
    """Admin registration and document actions."""

    def test_models_registered(self):
        for model in (Warehouse, Product, StockByLocation, StockMovement, Document):
            assert admin.site.is_registered(model)

    def test_ledger_is_read_only(self, admin_user):
        request = RequestFactory().get('/')
        request.user = admin_user
        model_admin = admin.site._registry[StockMovement]

        assert not model_admin.has_add_permission(request)
        assert not model_admin.has_change_permission(request)
        assert not model_admin.has_delete_permission(request)

    def test_validate_action_commits(self, admin_user, main_warehouse, widget, monkeypatch):
        receipt = Documents.create('receipt', warehouse=main_warehouse,
                                   lines=[{'product': widget, 'quantity': 4}])
        request = RequestFactory().post('/')
        request.user = admin_user
        model_admin = DocumentAdmin(Document, admin.site)
        monkeypatch.setattr(model_admin, 'message_user', lambda *args, **kwargs: None)

        model_admin.validate(request, Document.objects.filter(pk=receipt.pk))

        receipt.refresh_from_db()
        assert receipt.status == DocumentStatus.DONE
        assert StockMovement.objects.get().user == admin_user

    def test_failed_action_leaves_document(self, admin_user, main_warehouse, widget,
                                           monkeypatch):
        delivery = Documents.create('delivery', warehouse=main_warehouse,
                                    lines=[{'product': widget, 'quantity': 4}])
        request = RequestFactory().post('/')
        request.user = admin_user
        model_admin = DocumentAdmin(Document, admin.site)
        messages = []
        monkeypatch.setattr(
            model_admin, 'message_user',
            lambda request, message, *args, **kwargs: messages.append(str(message)),
        )

        model_admin.validate(request, Document.objects.filter(pk=delivery.pk))

        delivery.refresh_from_db()
        assert delivery.status == DocumentStatus.DRAFT
        assert delivery.reference_no in messages[0]


class TestDocumentAdminLayout:
    """Per-kind header fields and line inlines."""

    def _admin_request(self, admin_user, path='/'):
        request = RequestFactory().get(path)
        request.user = admin_user
        return request

    def test_receipt_hides_transfer_and_adjustment_fields(self, admin_user, main_warehouse):
        receipt = Documents.create('receipt', warehouse=main_warehouse)
        model_admin = DocumentAdmin(Document, admin.site)

        fields = model_admin.get_fields(self._admin_request(admin_user), receipt)

        assert 'partner_name' in fields
        for name in ('to_warehouse', 'to_location', 'product', 'counted_quantity',
                     'system_quantity'):
            assert name not in fields

    def test_transfer_shows_destination(self, admin_user, main_warehouse, store_warehouse):
        transfer = Documents.create('transfer', warehouse=main_warehouse,
                                    to_warehouse=store_warehouse)
        model_admin = DocumentAdmin(Document, admin.site)

        fields = model_admin.get_fields(self._admin_request(admin_user), transfer)

        assert 'to_warehouse' in fields
        assert 'partner_name' not in fields

    def test_adjustment_has_no_line_inline(self, admin_user, main_warehouse, widget):
        adjustment = Documents.create('adjustment', warehouse=main_warehouse,
                                      product=widget, counted_quantity=3)
        receipt = Documents.create('receipt', warehouse=main_warehouse)
        model_admin = DocumentAdmin(Document, admin.site)
        request = self._admin_request(admin_user)

        assert model_admin.get_inlines(request, adjustment) == []
        assert model_admin.get_inlines(request, receipt) == [DocumentLineInline]

    def test_add_form_follows_kind_parameter(self, admin_user):
        model_admin = DocumentAdmin(Document, admin.site)
        request = self._admin_request(admin_user, '/?kind=adjustment')

        fields = model_admin.get_fields(request)

        assert 'counted_quantity' in fields
        assert 'partner_name' not in fields
        assert model_admin.get_inlines(request, None) == []

    def test_form_rejects_fields_of_other_kinds(self, main_warehouse, store_warehouse):
        form_class = modelform_factory(
            Document, form=DocumentAdminForm,
            fields=['kind', 'warehouse', 'to_warehouse', 'partner_name'],
        )
        form = form_class(data={
            'kind': 'receipt',
            'warehouse': main_warehouse.pk,
            'to_warehouse': store_warehouse.pk,
            'partner_name': 'Tech Supplies Inc.',
        })

        assert not form.is_valid()
        assert 'to_warehouse' in form.errors

    def test_form_accepts_transfer_destination(self, main_warehouse, store_warehouse):
        form_class = modelform_factory(
            Document, form=DocumentAdminForm,
            fields=['kind', 'warehouse', 'to_warehouse'],
        )
        form = form_class(data={
            'kind': 'transfer',
            'warehouse': main_warehouse.pk,
            'to_warehouse': store_warehouse.pk,
        })

        assert form.is_valid(), form.errors
