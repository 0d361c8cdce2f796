"""
Client side of the status polling contract.

After initiating a payment the client asks for its status at a fixed
interval, a bounded number of times, then gives up and tells the user the
result will arrive by SMS. Cancelling only stops future polls.
"""
import logging
import threading
from dataclasses import dataclass
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

GAVE_UP_MESSAGE = "Payment status is still pending. You will receive an SMS when the payment is processed."
TERMINAL = ('completed', 'failed')


@dataclass
class PollOutcome:
    status: str
    message: str
    attempts: int
    cancelled: bool = False

    @property
    def finished(self):
        return self.status in TERMINAL


class StatusPoller:
    def __init__(self, fetch, interval=10, max_attempts=12):
        # fetch(reference) -> {"status": ..., "message": ...}
        self.fetch = fetch
        self.interval = interval
        self.max_attempts = max_attempts

    def poll(self, reference, cancel=None) -> PollOutcome:
        cancel = cancel or threading.Event()
        status, message = 'pending', ''

        for attempt in range(1, self.max_attempts + 1):
            if cancel.is_set():
                return PollOutcome(status, "Polling cancelled", attempt - 1, cancelled=True)

            try:
                result = self.fetch(reference)
            except requests.RequestException as e:
                logger.warning("Status poll %s/%s for %s failed: %s", attempt, self.max_attempts, reference, e)
            else:
                status = result.get('status') or status
                message = result.get('message') or message
                if status in TERMINAL:
                    return PollOutcome(status, message, attempt)

            if attempt < self.max_attempts and cancel.wait(self.interval):
                return PollOutcome(status, "Polling cancelled", attempt, cancelled=True)

        return PollOutcome(status, GAVE_UP_MESSAGE, self.max_attempts)


def http_status_fetcher(base_url, session=None, timeout=10):
    """
    Build a fetch callable that asks the status endpoint of a running server.

    ``session`` must already carry the buyer's login cookie. The read-only GET
    endpoint is used so no CSRF token is needed.
    """
    session = session or requests.Session()
    base_url = base_url.rstrip('/')

    def fetch(reference):
        url = f"{base_url}/payments/{quote(reference, safe='')}/status/"
        resp = session.get(url, timeout=timeout)
        if resp.status_code == 404:
            return {'status': None, 'message': resp.json().get('message')}
        resp.raise_for_status()
        return resp.json()

    return fetch
