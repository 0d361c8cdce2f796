from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand

from payments.services.expiry import expire_stale_transactions
from payments.services.mpesa import get_gateway_client


class Command(BaseCommand):
    help = "Resolve pending M-Pesa payments whose callback never arrived."

    def add_arguments(self, parser):
        parser.add_argument(
            '--minutes', type=int, default=settings.PAYMENT_PENDING_TIMEOUT_MINUTES,
            help="Age after which a pending payment is considered stale.",
        )
        parser.add_argument(
            '--no-query', action='store_true',
            help="Expire without asking M-Pesa for the STK result first.",
        )

    def handle(self, *args, **options):
        gateway = None if options['no_query'] else get_gateway_client()
        settled = expire_stale_transactions(gateway=gateway, timeout=timedelta(minutes=options['minutes']))
        for txn in settled:
            self.stdout.write(f"{txn.reference}: {txn.status}")
        self.stdout.write(self.style.SUCCESS(f"Resolved {len(settled)} stale payment(s)"))
