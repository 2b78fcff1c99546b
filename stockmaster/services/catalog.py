"""
Catalog & location registry — products, warehouses and locations.

Plain reference data. The only rules here are uniqueness of SKUs,
warehouse codes and per-warehouse location names, and refusing to delete
anything the ledger or a document still points at.
"""

import logging

from django.db import IntegrityError, transaction
from django.db.models import Model, ProtectedError, Q

from stockmaster.exceptions import ConflictError, NotFoundError, ValidationError
from stockmaster.models.balance import StockByLocation
from stockmaster.models.movement import StockMovement
from stockmaster.models.product import Product
from stockmaster.models.warehouse import Location, Warehouse
from stockmaster.services.rules import to_quantity

logger = logging.getLogger('stockmaster')


def _get(model: type[Model], ref, code: str, queryset=None):
    """Resolve an instance or primary key to a fresh row."""
    if ref is None:
        raise NotFoundError(code, id=None)
    pk = ref.pk if isinstance(ref, model) else ref
    qs = queryset if queryset is not None else model.objects.all()
    try:
        return qs.get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(code, id=pk) from None


def _check_fields(fields: dict, allowed: frozenset, read_only: frozenset = frozenset()):
    for name in fields:
        if name in read_only:
            raise ValidationError('READ_ONLY_FIELD', field=name)
        if name not in allowed:
            raise ValidationError('UNKNOWN_FIELD', field=name)


def _required(fields: dict, *names):
    for name in names:
        value = fields.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError('REQUIRED_FIELD', field=name)


def _quantity_or_none(value, field: str):
    if value is None or value == '':
        return None
    value = to_quantity(value, field)
    if value < 0:
        raise ValidationError('INVALID_QUANTITY', field=field, value=value)
    return value


def _save_unique(instance: Model, error_code: str, **data):
    """Save, translating unique-constraint violations into ConflictError."""
    try:
        with transaction.atomic():
            instance.save()
    except IntegrityError:
        raise ConflictError(error_code, **data) from None


class Catalog:
    """CRUD for products, warehouses and locations."""

    PRODUCT_FIELDS = frozenset({
        'sku', 'name', 'category', 'unit_of_measure', 'description',
        'reorder_level', 'is_active',
    })
    WAREHOUSE_FIELDS = frozenset({'code', 'name', 'address', 'contact_info', 'is_active'})
    LOCATION_FIELDS = frozenset({'name', 'is_primary'})

    # ══════════════════════════════════════════════════════════════
    # PRODUCTS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def get_product(cls, ref) -> Product:
        return _get(Product, ref, 'PRODUCT_NOT_FOUND')

    @classmethod
    def create_product(cls, **fields) -> Product:
        """
        Raises:
            ValidationError: missing sku/name, unknown field, bad reorder level
            ConflictError('DUPLICATE_SKU'): SKU already in use
        """
        _check_fields(fields, cls.PRODUCT_FIELDS, frozenset({'total_stock'}))
        _required(fields, 'sku', 'name')
        fields['sku'] = fields['sku'].strip()
        fields['reorder_level'] = _quantity_or_none(fields.get('reorder_level'), 'reorder_level')

        if Product.objects.filter(sku=fields['sku']).exists():
            raise ConflictError('DUPLICATE_SKU', sku=fields['sku'])

        product = Product(**fields)
        _save_unique(product, 'DUPLICATE_SKU', sku=product.sku)
        logger.info("catalog.product.create", extra={"product_id": product.pk, "sku": product.sku})
        return product

    @classmethod
    def update_product(cls, product, **fields) -> Product:
        """
        Raises:
            ValidationError('READ_ONLY_FIELD'): total_stock is derived
            ConflictError('DUPLICATE_SKU'): new SKU already in use
        """
        product = cls.get_product(product)
        _check_fields(fields, cls.PRODUCT_FIELDS, frozenset({'total_stock'}))
        if 'sku' in fields or 'name' in fields:
            _required({**{'sku': product.sku, 'name': product.name}, **fields}, 'sku', 'name')
        if 'reorder_level' in fields:
            fields['reorder_level'] = _quantity_or_none(fields['reorder_level'], 'reorder_level')
        if 'sku' in fields:
            fields['sku'] = fields['sku'].strip()
            if Product.objects.filter(sku=fields['sku']).exclude(pk=product.pk).exists():
                raise ConflictError('DUPLICATE_SKU', sku=fields['sku'])

        for name, value in fields.items():
            setattr(product, name, value)
        _save_unique(product, 'DUPLICATE_SKU', sku=product.sku)
        logger.info("catalog.product.update", extra={"product_id": product.pk, "fields": sorted(fields)})
        return product

    @classmethod
    def delete_product(cls, product) -> None:
        """
        Raises:
            ConflictError('HAS_DEPENDENTS'): stock, movements or documents exist
        """
        product = cls.get_product(product)
        has_dependents = (
            product.stock_by_location.filter(quantity__gt=0).exists()
            or product.movements.exists()
            or product.document_lines.exists()
            or product.adjustments.exists()
        )
        if has_dependents:
            raise ConflictError('HAS_DEPENDENTS', product=product.sku)

        try:
            with transaction.atomic():
                product.stock_by_location.all().delete()
                product.delete()
        except ProtectedError:
            raise ConflictError('HAS_DEPENDENTS', product=product.sku) from None
        logger.info("catalog.product.delete", extra={"sku": product.sku})

    @classmethod
    def list_products(cls, search: str | None = None, category: str | None = None,
                      warehouse=None, is_active: bool | None = None):
        """
        Products with filters.

        Args:
            search: name or SKU substring
            category: category substring
            warehouse: only products with stock in this warehouse
            is_active: active flag (None = both)
        """
        qs = Product.objects.all()
        if search:
            qs = qs.search(search)
        if category:
            qs = qs.filter(category__icontains=category)
        if warehouse is not None:
            qs = qs.filter(
                stock_by_location__warehouse=getattr(warehouse, 'pk', warehouse),
                stock_by_location__quantity__gt=0,
            ).distinct()
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        return qs

    @classmethod
    def categories(cls) -> list[str]:
        """Distinct non-empty categories, sorted."""
        return list(
            Product.objects.exclude(category='')
            .order_by('category')
            .values_list('category', flat=True)
            .distinct()
        )

    # ══════════════════════════════════════════════════════════════
    # WAREHOUSES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def get_warehouse(cls, ref) -> Warehouse:
        return _get(Warehouse, ref, 'WAREHOUSE_NOT_FOUND')

    @classmethod
    def create_warehouse(cls, locations: list[str] | None = None, **fields) -> Warehouse:
        """
        Create a warehouse, optionally with its first locations.

        The first location becomes the primary one.

        Raises:
            ConflictError('DUPLICATE_CODE'): code already in use
        """
        _check_fields(fields, cls.WAREHOUSE_FIELDS)
        _required(fields, 'code', 'name')
        fields['code'] = fields['code'].strip()

        if Warehouse.objects.filter(code=fields['code']).exists():
            raise ConflictError('DUPLICATE_CODE', warehouse=fields['code'])

        with transaction.atomic():
            warehouse = Warehouse(**fields)
            _save_unique(warehouse, 'DUPLICATE_CODE', warehouse=warehouse.code)
            for name in locations or []:
                cls.create_location(warehouse, name=name)

        logger.info(
            "catalog.warehouse.create",
            extra={"warehouse_id": warehouse.pk, "code": warehouse.code},
        )
        return warehouse

    @classmethod
    def update_warehouse(cls, warehouse, **fields) -> Warehouse:
        warehouse = cls.get_warehouse(warehouse)
        _check_fields(fields, cls.WAREHOUSE_FIELDS)
        if 'code' in fields or 'name' in fields:
            _required({**{'code': warehouse.code, 'name': warehouse.name}, **fields}, 'code', 'name')
        if 'code' in fields:
            fields['code'] = fields['code'].strip()
            if Warehouse.objects.filter(code=fields['code']).exclude(pk=warehouse.pk).exists():
                raise ConflictError('DUPLICATE_CODE', warehouse=fields['code'])

        for name, value in fields.items():
            setattr(warehouse, name, value)
        _save_unique(warehouse, 'DUPLICATE_CODE', warehouse=warehouse.code)
        logger.info(
            "catalog.warehouse.update",
            extra={"warehouse_id": warehouse.pk, "fields": sorted(fields)},
        )
        return warehouse

    @classmethod
    def archive_warehouse(cls, warehouse) -> Warehouse:
        """Soft delete. History and balances stay untouched."""
        return cls.update_warehouse(warehouse, is_active=False)

    @classmethod
    def delete_warehouse(cls, warehouse) -> None:
        """
        Hard delete a warehouse that never held stock.

        Raises:
            ConflictError('HAS_DEPENDENTS'): stock, movements or documents exist.
                Use archive_warehouse() instead.
        """
        warehouse = cls.get_warehouse(warehouse)
        has_dependents = (
            warehouse.balances.filter(quantity__gt=0).exists()
            or StockMovement.objects.filter(
                Q(warehouse=warehouse)
                | Q(from_location__warehouse=warehouse)
                | Q(to_location__warehouse=warehouse)
            ).exists()
            or warehouse.documents.exists()
            or warehouse.incoming_transfers.exists()
        )
        if has_dependents:
            raise ConflictError('HAS_DEPENDENTS', warehouse=warehouse.code)

        try:
            with transaction.atomic():
                StockByLocation.objects.filter(warehouse=warehouse).delete()
                warehouse.locations.all().delete()
                warehouse.delete()
        except ProtectedError:
            raise ConflictError('HAS_DEPENDENTS', warehouse=warehouse.code) from None
        logger.info("catalog.warehouse.delete", extra={"code": warehouse.code})

    @classmethod
    def list_warehouses(cls, search: str | None = None, is_active: bool | None = None):
        qs = Warehouse.objects.prefetch_related('locations')
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(code__icontains=search))
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        return qs.order_by('name')

    # ══════════════════════════════════════════════════════════════
    # LOCATIONS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def get_location(cls, ref) -> Location:
        return _get(
            Location, ref, 'LOCATION_NOT_FOUND',
            queryset=Location.objects.select_related('warehouse'),
        )

    @classmethod
    def primary_location(cls, warehouse) -> Location | None:
        return cls.get_warehouse(warehouse).primary_location

    @classmethod
    def create_location(cls, warehouse, **fields) -> Location:
        """
        Add a location to a warehouse.

        The first location of a warehouse is primary. Flagging a new one
        primary clears the flag on the others.

        Raises:
            ConflictError('DUPLICATE_LOCATION'): name already used in warehouse
        """
        warehouse = cls.get_warehouse(warehouse)
        _check_fields(fields, cls.LOCATION_FIELDS, frozenset({'warehouse'}))
        _required(fields, 'name')
        fields['name'] = fields['name'].strip()

        if warehouse.locations.filter(name=fields['name']).exists():
            raise ConflictError('DUPLICATE_LOCATION', warehouse=warehouse.code, name=fields['name'])

        if not warehouse.locations.exists():
            fields['is_primary'] = True

        with transaction.atomic():
            if fields.get('is_primary'):
                warehouse.locations.update(is_primary=False)
            location = Location(warehouse=warehouse, **fields)
            _save_unique(location, 'DUPLICATE_LOCATION', warehouse=warehouse.code, name=location.name)

        logger.info(
            "catalog.location.create",
            extra={
                "location_id": location.pk,
                "warehouse": warehouse.code,
                "location": location.name,
            },
        )
        return location

    @classmethod
    def update_location(cls, location, **fields) -> Location:
        location = cls.get_location(location)
        _check_fields(fields, cls.LOCATION_FIELDS, frozenset({'warehouse'}))
        if 'name' in fields:
            _required(fields, 'name')
            fields['name'] = fields['name'].strip()
            siblings = Location.objects.filter(warehouse=location.warehouse_id, name=fields['name'])
            if siblings.exclude(pk=location.pk).exists():
                raise ConflictError(
                    'DUPLICATE_LOCATION', warehouse=location.warehouse.code, name=fields['name'],
                )

        with transaction.atomic():
            if fields.get('is_primary'):
                Location.objects.filter(warehouse=location.warehouse_id).exclude(
                    pk=location.pk,
                ).update(is_primary=False)
            for name, value in fields.items():
                setattr(location, name, value)
            _save_unique(
                location, 'DUPLICATE_LOCATION',
                warehouse=location.warehouse.code, name=location.name,
            )
        return location

    @classmethod
    def delete_location(cls, location) -> None:
        """
        Raises:
            ConflictError('HAS_DEPENDENTS'): stock, movements or documents exist
        """
        location = cls.get_location(location)
        has_dependents = (
            location.balances.filter(quantity__gt=0).exists()
            or location.outgoing_movements.exists()
            or location.incoming_movements.exists()
            or location.documents.exists()
            or location.incoming_transfers.exists()
        )
        if has_dependents:
            raise ConflictError('HAS_DEPENDENTS', location=location.pk)

        try:
            with transaction.atomic():
                location.balances.all().delete()
                location.delete()
        except ProtectedError:
            raise ConflictError('HAS_DEPENDENTS', location=location.pk) from None

    @classmethod
    def list_locations(cls, warehouse=None):
        qs = Location.objects.select_related('warehouse')
        if warehouse is not None:
            qs = qs.filter(warehouse=getattr(warehouse, 'pk', warehouse))
        return qs.order_by('warehouse__name', '-is_primary', 'name')
