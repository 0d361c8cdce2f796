import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

import requests
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from ..models import WebhookSubscription

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'X-Signature'
EVENT_HEADER = 'X-Webhook-Event'


def encode_payload(payload) -> bytes:
    return json.dumps(payload, cls=DjangoJSONEncoder, separators=(',', ':')).encode('utf-8')


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    return hmac.compare_digest(sign_payload(body, secret), signature or '')


@dataclass
class DeliveryResult:
    subscription_id: int
    url: str
    success: bool
    status_code: int = None
    error: str = None


class WebhookNotifier:
    """Signs and POSTs an event to every active subscriber. Failures are logged, never retried."""

    def __init__(self, session=None, timeout=None):
        self.session = session or requests.Session()
        self.timeout = settings.WEBHOOK_TIMEOUT if timeout is None else timeout

    def notify(self, event, data):
        event = str(event)
        subscriptions = WebhookSubscription.objects.for_event(event)
        if not subscriptions:
            logger.debug("No webhook subscriptions for %s", event)
            return []

        body = encode_payload({
            'event': event,
            'data': data,
            'timestamp': timezone.now().isoformat(),
        })
        return [self._deliver(subscription, event, body) for subscription in subscriptions]

    def _deliver(self, subscription, event, body):
        headers = {
            'Content-Type': 'application/json',
            SIGNATURE_HEADER: sign_payload(body, subscription.secret),
            EVENT_HEADER: event,
        }
        logger.info("Sending %s webhook to %s", event, subscription.url)
        try:
            resp = self.session.post(subscription.url, data=body, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Failed to send %s webhook to %s: %s", event, subscription.url, e)
            status_code = e.response.status_code if e.response is not None else None
            return DeliveryResult(subscription.pk, subscription.url, False, status_code=status_code, error=str(e))

        logger.info("Webhook %s delivered to %s (%s)", event, subscription.url, resp.status_code)
        return DeliveryResult(subscription.pk, subscription.url, True, status_code=resp.status_code)


def transaction_event_data(transaction):
    return {
        'transaction_id': str(transaction.pk),
        'reference': transaction.reference,
        'amount': str(transaction.amount),
        'currency': transaction.currency,
        'status': transaction.status,
        'package_id': transaction.package_id,
        'user_id': transaction.user_id,
        'phone_number': transaction.phone_number,
        'receipt_number': transaction.metadata.get('receipt_number'),
        'created_at': transaction.created_at.isoformat(),
    }
