"""
Initial migration for Stockmaster models.
"""

from decimal import Decimal
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


KIND_CHOICES = [
    ('receipt', 'Receipt'),
    ('delivery', 'Delivery order'),
    ('transfer', 'Internal transfer'),
    ('adjustment', 'Stock adjustment'),
]

STATUS_CHOICES = [
    ('draft', 'Draft'),
    ('waiting', 'Waiting'),
    ('ready', 'Ready'),
    ('done', 'Done'),
    ('canceled', 'Canceled'),
]


class Migration(migrations.Migration):
    """Create Stockmaster models: catalog, balances, documents, ledger."""

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Warehouse',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(help_text='Short unique code (e.g. WH-MAIN)', max_length=20, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=100, verbose_name='Name')),
                ('address', models.CharField(blank=True, default='', max_length=255, verbose_name='Address')),
                ('contact_info', models.CharField(blank=True, default='', max_length=255, verbose_name='Contact')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Warehouse',
                'verbose_name_plural': 'Warehouses',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Location',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, verbose_name='Name')),
                ('is_primary', models.BooleanField(default=False, help_text='Default location for documents that do not name one.', verbose_name='Primary location')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='locations', to='stockmaster.warehouse', verbose_name='Warehouse')),
            ],
            options={
                'verbose_name': 'Location',
                'verbose_name_plural': 'Locations',
                'ordering': ['warehouse', 'name'],
                'constraints': [
                    models.UniqueConstraint(fields=('warehouse', 'name'), name='unique_location_name_per_warehouse'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku', models.CharField(max_length=64, unique=True, verbose_name='SKU')),
                ('name', models.CharField(max_length=200, verbose_name='Name')),
                ('category', models.CharField(blank=True, db_index=True, default='', max_length=100, verbose_name='Category')),
                ('unit_of_measure', models.CharField(default='pieces', max_length=20, verbose_name='Unit of measure')),
                ('description', models.TextField(blank=True, default='', verbose_name='Description')),
                ('reorder_level', models.DecimalField(blank=True, decimal_places=3, help_text='Low-stock threshold. Empty = no alert.', max_digits=12, null=True, verbose_name='Reorder level')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('total_stock', models.DecimalField(decimal_places=3, default=Decimal('0'), editable=False, max_digits=12, verbose_name='Total stock')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Product',
                'verbose_name_plural': 'Products',
                'ordering': ['name'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('total_stock__gte', 0)), name='product_total_stock_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockByLocation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Quantity')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='stock_by_location', to='stockmaster.product', verbose_name='Product')),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='balances', to='stockmaster.warehouse', verbose_name='Warehouse')),
                ('location', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='balances', to='stockmaster.location', verbose_name='Location')),
            ],
            options={
                'verbose_name': 'Stock by location',
                'verbose_name_plural': 'Stock by location',
                'ordering': ['product', 'warehouse', 'location'],
                'indexes': [
                    models.Index(fields=['warehouse', 'product'], name='balance_warehouse_product_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('product', 'warehouse', 'location'), name='unique_stock_coordinate'),
                    models.CheckConstraint(condition=models.Q(('quantity__gte', 0)), name='stock_quantity_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReferenceSequence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('prefix', models.CharField(max_length=10)),
                ('year', models.PositiveIntegerField()),
                ('last_value', models.PositiveIntegerField(default=0)),
            ],
            options={
                'verbose_name': 'Reference sequence',
                'verbose_name_plural': 'Reference sequences',
                'constraints': [
                    models.UniqueConstraint(fields=('prefix', 'year'), name='unique_reference_sequence'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=KIND_CHOICES, db_index=True, max_length=20, verbose_name='Kind')),
                ('reference_no', models.CharField(editable=False, help_text='<PREFIX>-<YEAR>-<seq>, assigned once at creation', max_length=40, unique=True, verbose_name='Reference')),
                ('status', models.CharField(choices=STATUS_CHOICES, db_index=True, default='draft', max_length=20, verbose_name='Status')),
                ('date', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Scheduled date')),
                ('partner_name', models.CharField(blank=True, default='', max_length=200, verbose_name='Supplier / customer')),
                ('system_quantity', models.DecimalField(blank=True, decimal_places=3, max_digits=12, null=True, verbose_name='System quantity')),
                ('counted_quantity', models.DecimalField(blank=True, decimal_places=3, max_digits=12, null=True, verbose_name='Counted quantity')),
                ('reason', models.CharField(blank=True, default='', max_length=255, verbose_name='Reason')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notes')),
                ('warehouse_name', models.CharField(blank=True, default='', max_length=100)),
                ('location_name', models.CharField(blank=True, default='', max_length=100)),
                ('to_warehouse_name', models.CharField(blank=True, default='', max_length=100)),
                ('to_location_name', models.CharField(blank=True, default='', max_length=100)),
                ('product_name', models.CharField(blank=True, default='', max_length=200)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('done_at', models.DateTimeField(blank=True, null=True, verbose_name='Validated at')),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='documents', to='stockmaster.warehouse', verbose_name='Warehouse')),
                ('location', models.ForeignKey(blank=True, help_text='Empty = warehouse primary location', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='documents', to='stockmaster.location', verbose_name='Location')),
                ('to_warehouse', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='incoming_transfers', to='stockmaster.warehouse', verbose_name='Destination warehouse')),
                ('to_location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='incoming_transfers', to='stockmaster.location', verbose_name='Destination location')),
                ('product', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='adjustments', to='stockmaster.product', verbose_name='Product')),
            ],
            options={
                'verbose_name': 'Document',
                'verbose_name_plural': 'Documents',
                'ordering': ['-date', '-pk'],
                'indexes': [
                    models.Index(fields=['kind', 'status'], name='document_kind_status_idx'),
                    models.Index(fields=['warehouse', 'kind'], name='document_warehouse_kind_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DocumentLine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Quantity')),
                ('unit_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, verbose_name='Unit price')),
                ('product_name', models.CharField(blank=True, default='', max_length=200)),
                ('product_sku', models.CharField(blank=True, default='', max_length=64)),
                ('unit_of_measure', models.CharField(blank=True, default='', max_length=20)),
                ('document', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lines', to='stockmaster.document', verbose_name='Document')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='document_lines', to='stockmaster.product', verbose_name='Product')),
            ],
            options={
                'verbose_name': 'Document line',
                'verbose_name_plural': 'Document lines',
                'ordering': ['pk'],
            },
        ),
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='Timestamp')),
                ('movement_type', models.CharField(choices=KIND_CHOICES, max_length=20, verbose_name='Type')),
                ('quantity_change', models.DecimalField(decimal_places=3, help_text='Positive = in, negative = out. Transfers: amount moved.', max_digits=12, verbose_name='Quantity change')),
                ('document_type', models.CharField(choices=KIND_CHOICES, max_length=20, verbose_name='Document type')),
                ('product_name', models.CharField(blank=True, default='', max_length=200)),
                ('product_sku', models.CharField(blank=True, default='', max_length=64)),
                ('warehouse_name', models.CharField(blank=True, default='', max_length=100)),
                ('from_location_name', models.CharField(blank=True, default='', max_length=255)),
                ('to_location_name', models.CharField(blank=True, default='', max_length=255)),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notes')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='stockmaster.product', verbose_name='Product')),
                ('from_location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='outgoing_movements', to='stockmaster.location', verbose_name='From')),
                ('to_location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='incoming_movements', to='stockmaster.location', verbose_name='To')),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='stockmaster.warehouse', verbose_name='Warehouse')),
                ('document', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='stockmaster.document', verbose_name='Document')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL, verbose_name='User')),
            ],
            options={
                'verbose_name': 'Stock movement',
                'verbose_name_plural': 'Stock movements',
                'ordering': ['-timestamp', 'pk'],
                'indexes': [
                    models.Index(fields=['product', 'timestamp'], name='movement_product_ts_idx'),
                    models.Index(fields=['warehouse', 'timestamp'], name='movement_warehouse_ts_idx'),
                    models.Index(fields=['movement_type', 'timestamp'], name='movement_type_ts_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('from_location__isnull', False), ('to_location__isnull', False), _connector='OR'), name='movement_has_endpoint'),
                    models.CheckConstraint(condition=models.Q(('quantity_change', 0), _negated=True), name='movement_quantity_non_zero'),
                ],
            },
        ),
    ]
