from django.core.management.base import BaseCommand, CommandError

from apps.sellers.models import Wallet
from apps.sellers.services import wallet as wallet_service


class Command(BaseCommand):
    help = 'Replay every wallet ledger and report wallets whose stored balances drifted'

    def add_arguments(self, parser):
        parser.add_argument('--seller', help='Only check the wallet of this seller email')
        parser.add_argument(
            '--fail-on-drift',
            action='store_true',
            help='Exit with an error when any wallet drifted (for cron / CI)'
        )

    def handle(self, *args, **options):
        wallets = Wallet.objects.select_related('seller').order_by('pk')
        if options.get('seller'):
            wallets = wallets.filter(seller__email=options['seller'])

        checked = 0
        drifted = 0
        for wallet in wallets.iterator():
            checked += 1
            drift = wallet_service.reconcile(wallet)
            if not drift:
                continue

            drifted += 1
            self.stdout.write(self.style.ERROR(f'✗ {wallet.seller.email}'))
            for field, values in drift.items():
                self.stdout.write(f"    {field}: stored {values['stored']}, ledger {values['replayed']}")

        if drifted:
            message = f'{drifted} of {checked} wallet(s) drifted from their ledger'
            if options.get('fail_on_drift'):
                raise CommandError(message)
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(f'✓ {checked} wallet(s) match their ledger'))
