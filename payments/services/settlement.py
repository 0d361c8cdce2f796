import logging

from ..audit import log_payment_event
from ..models import Transaction, WebhookSubscription
from ..signals import payment_completed, payment_failed
from .webhooks import WebhookNotifier, transaction_event_data

logger = logging.getLogger(__name__)

OUTCOMES = {
    Transaction.Status.COMPLETED.value: (payment_completed, WebhookSubscription.Event.PAYMENT_COMPLETED),
    Transaction.Status.FAILED.value: (payment_failed, WebhookSubscription.Event.PAYMENT_FAILED),
}


def settle(transaction, status, metadata=None, notifier=None):
    """
    Write a terminal status and announce it.

    Signals, audit entry and webhooks fire only for the writer whose
    transition was applied, so each transaction is announced at most once.
    Returns ``(transaction, applied)``.
    """
    txn, applied = Transaction.objects.transition(transaction.pk, status, metadata)
    if not applied:
        logger.info("Transaction %s already %s, not moving it to %s", txn.reference, txn.status, status)
        return txn, False

    signal, event = OUTCOMES[txn.status]
    log_payment_event(txn, error=txn.failure_reason, receipt_number=txn.metadata.get('receipt_number'))
    # The state is already committed; a broken receiver must not cost the webhook.
    for receiver, response in signal.send_robust(sender=Transaction, transaction=txn):
        if isinstance(response, Exception):
            logger.error(
                "Receiver %r failed for transaction %s: %s", receiver, txn.reference, response,
                exc_info=response,
            )
    (notifier or WebhookNotifier()).notify(event, transaction_event_data(txn))
    return txn, True
