from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from payments.exceptions import TransientFailure
from payments.models import Transaction, WebhookSubscription
from payments.services.callbacks import CallbackReconciler, ReconcileOutcome
from payments.services.expiry import EXPIRED_MESSAGE, expire_stale_transactions, stale_transactions

from .fakes import stk_callback

pytestmark = pytest.mark.django_db


def age(txn, minutes):
    Transaction.objects.filter(pk=txn.pk).update(created_at=timezone.now() - timedelta(minutes=minutes))


def test_only_old_pending_transactions_are_stale(pending_transaction, user):
    fresh = Transaction.objects.create_pending(user=user, phone_number='254712345678', amount=10)
    age(pending_transaction, 45)

    assert list(stale_transactions()) == [Transaction.objects.get(pk=pending_transaction.pk)]
    assert fresh not in stale_transactions()


def test_query_success_completes(pending_transaction, fake_gateway, notifier):
    age(pending_transaction, 45)
    fake_gateway.query_push_status.return_value = {'ResultCode': '0', 'ResultDesc': 'processed successfully'}

    settled = expire_stale_transactions(fake_gateway, notifier)

    assert [t.pk for t in settled] == [pending_transaction.pk]
    txn = Transaction.objects.get(pk=pending_transaction.pk)
    assert txn.status == Transaction.Status.COMPLETED
    assert txn.metadata['resolved_by'] == 'stk_query'
    fake_gateway.query_push_status.assert_called_once_with('ws_CO_191020261200001')


def test_query_failure_code_fails(pending_transaction, fake_gateway, notifier):
    age(pending_transaction, 45)
    fake_gateway.query_push_status.return_value = {'ResultCode': 1032, 'ResultDesc': 'Request cancelled by user'}

    expire_stale_transactions(fake_gateway, notifier)

    txn = Transaction.objects.get(pk=pending_transaction.pk)
    assert txn.status == Transaction.Status.FAILED
    assert txn.failure_reason == 'Request cancelled by user'


def test_query_error_expires(pending_transaction, fake_gateway, notifier):
    age(pending_transaction, 45)
    fake_gateway.query_push_status.side_effect = TransientFailure('timed out')

    expire_stale_transactions(fake_gateway, notifier)

    txn = Transaction.objects.get(pk=pending_transaction.pk)
    assert txn.status == Transaction.Status.FAILED
    assert txn.metadata['error_type'] == 'expired'
    assert txn.failure_reason == EXPIRED_MESSAGE


def test_without_gateway_expires_and_notifies(pending_transaction, notifier, webhook_session):
    WebhookSubscription.objects.register('https://partner.example.com/hooks', ['payment.failed'])
    age(pending_transaction, 45)

    settled = expire_stale_transactions(None, notifier)
    again = expire_stale_transactions(None, notifier)

    assert len(settled) == 1
    assert again == []
    assert webhook_session.post.call_count == 1


def test_callback_after_expiry_is_recorded_as_late(pending_transaction, notifier):
    age(pending_transaction, 45)
    expire_stale_transactions(None, notifier)

    outcome = CallbackReconciler(notifier).reconcile(stk_callback('ws_CO_191020261200001'))

    assert outcome is ReconcileOutcome.ALREADY_TERMINAL
    txn = Transaction.objects.get(pk=pending_transaction.pk)
    assert txn.status == Transaction.Status.FAILED
    assert len(txn.metadata['late_callbacks']) == 1


def test_command_without_query(pending_transaction):
    age(pending_transaction, 45)
    out = StringIO()

    call_command('expire_stale_payments', '--no-query', stdout=out)

    assert Transaction.objects.get(pk=pending_transaction.pk).status == Transaction.Status.FAILED
    assert '1' in out.getvalue()
