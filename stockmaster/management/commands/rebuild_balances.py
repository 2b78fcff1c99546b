"""
Management command to rebuild stock balances from the ledger.

Usage:
    python manage.py rebuild_balances
    python manage.py rebuild_balances --dry-run
    python manage.py rebuild_balances --sku WIDGET-01
"""

from django.core.management.base import BaseCommand, CommandError

from stockmaster.exceptions import NotFoundError, OperationFailed
from stockmaster.models import Product
from stockmaster.services.balances import BalanceProjector


class Command(BaseCommand):
    """Replay the ledger and repair StockByLocation / total_stock."""

    help = 'Rebuild stock balances from the movement ledger'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report drift without fixing it',
        )
        parser.add_argument(
            '--sku',
            help='Only rebuild this product',
        )

    def handle(self, *args, **options):
        product = None
        if options['sku']:
            product = Product.objects.filter(sku=options['sku']).first()
            if product is None:
                raise CommandError(str(NotFoundError('PRODUCT_NOT_FOUND', sku=options['sku'])))

        try:
            drifts = BalanceProjector.rebuild(product=product, dry_run=options['dry_run'])
        except OperationFailed as exc:
            raise CommandError(f"{exc} {exc.data.get('coordinates', '')}".strip()) from exc

        for drift in drifts:
            where = (
                f"location {drift['location_id']}"
                if drift['location_id'] is not None else 'total_stock'
            )
            self.stdout.write(
                f"product {drift['product_id']} {where}: "
                f"{drift['actual']} -> {drift['expected']}"
            )

        if not drifts:
            self.stdout.write(self.style.SUCCESS('Balances match the ledger'))
        elif options['dry_run']:
            self.stdout.write(f'{len(drifts)} drift(s) found (dry run, nothing changed)')
        else:
            self.stdout.write(self.style.SUCCESS(f'{len(drifts)} drift(s) fixed'))
