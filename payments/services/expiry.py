import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from ..exceptions import GatewayError
from ..models import Transaction
from .settlement import settle

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Payment expired without confirmation from M-Pesa"


def stale_transactions(timeout=None, now=None):
    timeout = timeout or timedelta(minutes=settings.PAYMENT_PENDING_TIMEOUT_MINUTES)
    now = now or timezone.now()
    return Transaction.objects.filter(status=Transaction.Status.PENDING, created_at__lt=now - timeout)


def resolve_stale_transaction(txn, gateway=None, notifier=None):
    """
    Settle one pending transaction whose callback never came.

    A definite answer from the STK query wins; anything else expires it.
    """
    if gateway is not None and txn.checkout_request_id:
        try:
            result = gateway.query_push_status(txn.checkout_request_id)
        except GatewayError as e:
            logger.warning("STK query for %s failed, expiring it: %s", txn.reference, e)
        else:
            result_code = result.get('ResultCode')
            if result_code is not None:
                result_code = str(result_code)
                result_desc = result.get('ResultDesc') or ''
                if result_code == '0':
                    return settle(txn, Transaction.Status.COMPLETED, {
                        'result_code': result_code,
                        'result_desc': result_desc,
                        'resolved_by': 'stk_query',
                    }, notifier=notifier)
                return settle(txn, Transaction.Status.FAILED, {
                    'result_code': result_code,
                    'result_desc': result_desc,
                    'error_stage': 'stk_query',
                    'error_message': result_desc or f"M-Pesa result code {result_code}",
                    'resolved_by': 'stk_query',
                }, notifier=notifier)

    return settle(txn, Transaction.Status.FAILED, {
        'error_stage': 'expiry',
        'error_type': 'expired',
        'error_message': EXPIRED_MESSAGE,
        'expired_at': timezone.now().isoformat(),
    }, notifier=notifier)


def expire_stale_transactions(gateway=None, notifier=None, timeout=None, now=None):
    """Returns the transactions this run moved to a terminal state."""
    settled = []
    for txn in list(stale_transactions(timeout, now)):
        txn, applied = resolve_stale_transaction(txn, gateway, notifier)
        if applied:
            settled.append(txn)
    return settled
