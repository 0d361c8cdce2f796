import threading

from django.conf import settings
from django.core.management.base import BaseCommand

from payments.polling import StatusPoller
from payments.services.status import get_status


def local_fetch(reference):
    result = get_status(reference)
    return {'status': result.status, 'message': result.message}


class Command(BaseCommand):
    help = "Poll a payment's status the way the purchase page does, until it settles or polling gives up."

    def add_arguments(self, parser):
        parser.add_argument('reference')
        parser.add_argument('--interval', type=float, default=settings.PAYMENT_POLL_INTERVAL)
        parser.add_argument('--attempts', type=int, default=settings.PAYMENT_POLL_MAX_ATTEMPTS)

    def handle(self, *args, **options):
        poller = StatusPoller(local_fetch, interval=options['interval'], max_attempts=options['attempts'])
        cancel = threading.Event()
        try:
            outcome = poller.poll(options['reference'], cancel)
        except KeyboardInterrupt:
            cancel.set()
            self.stdout.write("Stopped polling")
            return

        self.stdout.write(f"{options['reference']}: {outcome.status} after {outcome.attempts} poll(s)")
        self.stdout.write(outcome.message)
