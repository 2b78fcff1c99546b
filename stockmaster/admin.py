"""
Stockmaster Admin.

- Warehouse: editable, locations inline
- Product: editable, total_stock read-only
- StockByLocation: read-only (balances only change via documents)
- StockMovement: read-only audit trail
- Document: editable while open, lines inline, with "mark ready",
  "validate" and "cancel" actions going through the lifecycle engine
"""

import logging

from django import forms
from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from stockmaster.exceptions import StockError
from stockmaster.models import (
    Document,
    DocumentKind,
    DocumentLine,
    DocumentStatus,
    Location,
    Product,
    StockByLocation,
    StockMovement,
    Warehouse,
)
from stockmaster.services.documents import EDITABLE_FIELDS, READ_ONLY_FIELDS, Documents

logger = logging.getLogger(__name__)

DOCUMENT_FIELDS = [
    'kind', 'reference_no', 'status', 'date', 'partner_name',
    'warehouse', 'location', 'to_warehouse', 'to_location',
    'product', 'system_quantity', 'counted_quantity', 'reason',
    'notes', 'done_at', 'created_at', 'updated_at',
]


def _document_kind(request, obj=None):
    """Kind of the document being edited, or the one picked via ?kind= on add."""
    if obj is not None:
        return obj.kind
    kind = request.GET.get('kind')
    return kind if kind in DocumentKind.values else None


class ReadOnlyAdminMixin:
    """No add, change or delete from the admin."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =========================================================================
# CATALOG
# =========================================================================

class LocationInline(admin.TabularInline):
    model = Location
    extra = 0
    fields = ['name', 'is_primary']


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    """Warehouse admin — archive instead of delete once stock has moved."""

    list_display = ['code', 'name', 'is_active', 'primary_location_display']
    list_filter = ['is_active']
    search_fields = ['code', 'name']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [LocationInline]

    @admin.display(description=_('Primary location'))
    def primary_location_display(self, obj):
        location = obj.primary_location
        return location.name if location else '-'


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Product admin — total_stock is maintained by the projector."""

    list_display = ['sku', 'name', 'category', 'total_stock', 'reorder_level',
                    'is_low_stock_display', 'is_active']
    list_filter = ['is_active', 'category']
    search_fields = ['sku', 'name']
    readonly_fields = ['total_stock', 'created_at', 'updated_at']

    @admin.display(description=_('Low stock?'), boolean=True)
    def is_low_stock_display(self, obj):
        return obj.is_low_stock


# =========================================================================
# BALANCES & LEDGER (read-only)
# =========================================================================

@admin.register(StockByLocation)
class StockByLocationAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Balance rows — read-only. Rebuild with `manage.py rebuild_balances`."""

    list_display = ['product', 'warehouse', 'location', 'quantity', 'updated_at']
    list_filter = ['warehouse']
    search_fields = ['product__sku', 'product__name']
    list_select_related = ['product', 'warehouse', 'location']


@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Ledger — read-only. Immutable audit trail."""

    list_display = ['timestamp', 'product_sku', 'movement_type', 'quantity_change',
                    'from_location_name', 'to_location_name', 'document', 'user']
    list_filter = ['movement_type', 'warehouse']
    search_fields = ['product_sku', 'product_name', 'document__reference_no']
    date_hierarchy = 'timestamp'
    list_select_related = ['document', 'user']


# =========================================================================
# DOCUMENTS
# =========================================================================

class DocumentLineForm(forms.ModelForm):
    class Meta:
        model = DocumentLine
        fields = ['product', 'quantity', 'unit_price']

    def clean_quantity(self):
        quantity = self.cleaned_data['quantity']
        if quantity is not None and quantity <= 0:
            raise forms.ValidationError(_('Quantity must be positive.'))
        return quantity


class DocumentLineFormSet(forms.BaseInlineFormSet):
    def clean(self):
        super().clean()
        if self.instance.kind != DocumentKind.ADJUSTMENT:
            return
        for form in self.forms:
            if form.has_changed() and not self._should_delete_form(form):
                raise forms.ValidationError(_('Adjustments have no lines.'))


class DocumentLineInline(admin.TabularInline):
    model = DocumentLine
    form = DocumentLineForm
    formset = DocumentLineFormSet
    extra = 0
    fields = ['product', 'quantity', 'unit_price']

    def formfield_for_foreignkey(self, db_field, request, **kwargs):
        if db_field.name == 'product':
            kwargs['queryset'] = Product.objects.active()
        return super().formfield_for_foreignkey(db_field, request, **kwargs)

    def has_change_permission(self, request, obj=None):
        if obj is not None and obj.is_locked:
            return False
        return super().has_change_permission(request, obj)

    has_add_permission = has_change_permission
    has_delete_permission = has_change_permission


class DocumentAdminForm(forms.ModelForm):
    """Runs the engine's header checks so errors show on the form."""

    class Meta:
        model = Document
        fields = '__all__'

    def clean(self):
        cleaned_data = super().clean()
        kind = cleaned_data.get('kind') or self.instance.kind
        editable = EDITABLE_FIELDS.get(kind)
        if editable is None:
            return cleaned_data
        for name, value in list(cleaned_data.items()):
            if name == 'kind' or name in editable:
                continue
            if value not in (None, ''):
                self.add_error(name, _('Not used by %(kind)s documents.') % {'kind': kind})
        return cleaned_data

    def _post_clean(self):
        super()._post_clean()
        if self.errors:
            return
        try:
            Documents.prepare(self.instance)
        except StockError as exc:
            self.add_error(None, str(exc))


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    """Document admin — status changes only through actions."""

    form = DocumentAdminForm
    list_display = ['reference_no', 'kind', 'status', 'date', 'partner_name',
                    'warehouse', 'to_warehouse', 'done_at']
    list_filter = ['kind', 'status', 'warehouse']
    search_fields = ['reference_no', 'partner_name']
    date_hierarchy = 'date'
    readonly_fields = ['reference_no', 'status', 'system_quantity', 'done_at',
                       'created_at', 'updated_at']
    exclude = ['warehouse_name', 'location_name', 'to_warehouse_name',
               'to_location_name', 'product_name']
    inlines = [DocumentLineInline]
    actions = ['submit', 'mark_ready', 'validate', 'cancel']

    def has_change_permission(self, request, obj=None):
        if obj is not None and obj.is_locked:
            return False
        return super().has_change_permission(request, obj)

    def get_fields(self, request, obj=None):
        kind = _document_kind(request, obj)
        if kind is None:
            return super().get_fields(request, obj)
        shown = EDITABLE_FIELDS[kind] | READ_ONLY_FIELDS
        if kind != DocumentKind.ADJUSTMENT:
            shown = shown - {'system_quantity'}
        return [name for name in DOCUMENT_FIELDS if name in shown]

    def get_inlines(self, request, obj):
        if _document_kind(request, obj) == DocumentKind.ADJUSTMENT:
            return []
        return super().get_inlines(request, obj)

    def get_readonly_fields(self, request, obj=None):
        fields = list(super().get_readonly_fields(request, obj))
        if obj is not None:
            fields.append('kind')
        return fields

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.status not in (DocumentStatus.DRAFT, DocumentStatus.CANCELED):
            return False
        return super().has_delete_permission(request, obj)

    def save_model(self, request, obj, form, change):
        if not change:
            obj.reference_no = Documents.next_reference(obj.kind)
        super().save_model(request, obj, form, change)

    def save_formset(self, request, form, formset, change):
        lines = formset.save(commit=False)
        for line in lines:
            line.refresh_snapshots()
            line.save()
        for line in formset.deleted_objects:
            line.delete()

    def _run_transition(self, request, queryset, status, label):
        done = 0
        for document in queryset:
            try:
                Documents.transition(document, status, user=request.user)
                done += 1
            except StockError as exc:
                logger.warning("%s: failed for %s: %s", label, document.reference_no, exc)
                self.message_user(
                    request, f"{document.reference_no}: {exc.message}", level=messages.ERROR,
                )
        if done:
            self.message_user(request, _('{count} document(s) updated.').format(count=done))

    @admin.action(description=_('Submit selected documents (waiting)'))
    def submit(self, request, queryset):
        self._run_transition(request, queryset, DocumentStatus.WAITING, 'submit')

    @admin.action(description=_('Mark selected documents ready'))
    def mark_ready(self, request, queryset):
        self._run_transition(request, queryset, DocumentStatus.READY, 'mark_ready')

    @admin.action(description=_('Validate selected documents (done)'))
    def validate(self, request, queryset):
        self._run_transition(request, queryset, DocumentStatus.DONE, 'validate')

    @admin.action(description=_('Cancel selected documents'))
    def cancel(self, request, queryset):
        self._run_transition(request, queryset, DocumentStatus.CANCELED, 'cancel')
