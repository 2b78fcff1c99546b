"""
Pytest fixtures for Stockmaster tests.
"""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model

from stockmaster.services.catalog import Catalog
from stockmaster.services.documents import Documents


User = get_user_model()


@pytest.fixture
def user(db):
    """Create a test user."""
    return User.objects.create_user(
        username='testuser',
        password='testpass123'
    )


@pytest.fixture
def main_warehouse(db):
    """Main warehouse with two racks (Rack A is primary)."""
    return Catalog.create_warehouse(
        code='WH-MAIN',
        name='Main Warehouse',
        address='1 Depot Road',
        locations=['Rack A', 'Rack B'],
    )


@pytest.fixture
def rack_a(main_warehouse):
    return main_warehouse.locations.get(name='Rack A')


@pytest.fixture
def rack_b(main_warehouse):
    return main_warehouse.locations.get(name='Rack B')


@pytest.fixture
def store_warehouse(db):
    """Second warehouse with a single shelf."""
    return Catalog.create_warehouse(
        code='WH-STORE',
        name='Store Backroom',
        locations=['Shelf 1'],
    )


@pytest.fixture
def shelf_1(store_warehouse):
    return store_warehouse.locations.get(name='Shelf 1')


@pytest.fixture
def widget(db):
    """Create a test product with a reorder level."""
    return Catalog.create_product(
        sku='WIDGET-01',
        name='Widget',
        category='Hardware',
        unit_of_measure='pieces',
        reorder_level=Decimal('10'),
    )


@pytest.fixture
def gadget(db):
    """Create a test product without a reorder level."""
    return Catalog.create_product(
        sku='GADGET-01',
        name='Gadget',
        category='Electronics',
    )


@pytest.fixture
def receive():
    """Create and commit a receipt: receive(product, qty, warehouse, location=None)."""
    def _receive(product, quantity, warehouse, location=None):
        receipt = Documents.create(
            'receipt',
            warehouse=warehouse,
            location=location,
            partner_name='Tech Supplies Inc.',
            lines=[{'product': product, 'quantity': Decimal(str(quantity))}],
        )
        return Documents.transition(receipt, 'done')
    return _receive
