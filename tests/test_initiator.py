import logging
import re
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from payments.exceptions import AuthFailure, Rejected, TransientFailure
from payments.models import Transaction
from payments.services.initiator import PaymentInitiator

from .fakes import FakeResponse, token_response

pytestmark = pytest.mark.django_db

REFERENCE_RE = re.compile(r'^DS\d{14}\d{1,3}$')


def test_accepted_push_leaves_transaction_pending(user, fake_gateway, notifier):
    result = PaymentInitiator(fake_gateway, notifier).initiate(user, '0712345678', 99)

    assert result.accepted
    assert REFERENCE_RE.match(result.reference)

    txn = Transaction.objects.get(reference=result.reference)
    assert txn.status == Transaction.Status.PENDING
    assert txn.phone_number == '254712345678'
    assert txn.amount == Decimal('99')
    assert txn.user == user
    assert txn.checkout_request_id == 'ws_CO_191020261200001'
    assert txn.metadata['checkout_request_id'] == 'ws_CO_191020261200001'
    assert txn.metadata['stk_response']['ResponseCode'] == '0'
    fake_gateway.push_payment.assert_called_once_with('254712345678', Decimal('99.00'), result.reference)


def test_transaction_is_persisted_before_gateway_call(user, fake_gateway):
    seen = {}

    def push(phone, amount, reference):
        seen['exists'] = Transaction.objects.filter(reference=reference, status='pending').exists()
        raise TransientFailure("connection reset")

    fake_gateway.push_payment.side_effect = push
    result = PaymentInitiator(fake_gateway).initiate(user, '0712345678', 99)

    assert seen['exists']
    assert Transaction.objects.filter(reference=result.reference).exists()


@pytest.mark.parametrize("error, error_type, stage", [
    (Rejected('400.002.02', 'Bad Request - Invalid PhoneNumber'), 'rejected', 'stk_push'),
    (AuthFailure('Invalid Authentication passed', code=400), 'auth_failure', 'auth'),
    (TransientFailure('Service Unavailable', code=503), 'transient_failure', 'stk_push'),
])
def test_gateway_failure_marks_transaction_failed(user, fake_gateway, notifier, error, error_type, stage):
    fake_gateway.push_payment.side_effect = error

    result = PaymentInitiator(fake_gateway, notifier).initiate(user, '0712345678', 99)

    assert not result.accepted
    assert result.message == error.description
    txn = Transaction.objects.get(reference=result.reference)
    assert txn.status == Transaction.Status.FAILED
    assert txn.metadata['error_type'] == error_type
    assert txn.metadata['error_stage'] == stage
    assert txn.metadata['error_message'] == error.description


def test_gateway_always_5xx_fails_with_transient_reason(user, mpesa_client, http_session, notifier):
    http_session.get.return_value = token_response()
    http_session.post.return_value = FakeResponse(503, text='Service Unavailable')

    result = PaymentInitiator(mpesa_client, notifier).initiate(user, '0712345678', 99)

    assert not result.accepted
    assert http_session.post.call_count == 3
    txn = Transaction.objects.get(reference=result.reference)
    assert txn.status == Transaction.Status.FAILED
    assert txn.metadata['error_type'] == 'transient_failure'
    assert txn.metadata['error_code'] == '503'


@pytest.mark.parametrize("phone, amount", [
    ('0712345678', -5),
    ('0712345678', 0),
    ('0712345678', 'ten'),
    ('0712345678', '0.001'),
    ('0712345678', '0.40'),
    ('0712345678', '99.50'),
    ('0712345678', '100000000'),
    ('12345', 99),
])
def test_invalid_request_creates_nothing(user, fake_gateway, phone, amount):
    with pytest.raises(ValidationError):
        PaymentInitiator(fake_gateway).initiate(user, phone, amount)

    assert Transaction.objects.count() == 0
    fake_gateway.push_payment.assert_not_called()


def test_unknown_package_is_rejected(user, fake_gateway):
    with pytest.raises(ValidationError):
        PaymentInitiator(fake_gateway).initiate(user, '0712345678', 99, package_id=9999)
    assert Transaction.objects.count() == 0


def test_package_is_attached(user, package, fake_gateway):
    result = PaymentInitiator(fake_gateway).initiate(user, '0712345678', 99, package_id=package.pk)
    assert result.transaction.package == package


def test_attempt_is_audited(user, fake_gateway, caplog):
    audit = logging.getLogger('payments.audit')
    audit.addHandler(caplog.handler)
    try:
        with caplog.at_level(logging.INFO, logger='payments.audit'):
            result = PaymentInitiator(fake_gateway).initiate(user, '0712345678', 99)
    finally:
        audit.removeHandler(caplog.handler)

    records = [r for r in caplog.records if r.name == 'payments.audit']
    assert len(records) == 1
    assert records[0].reference == result.reference
    assert records[0].status == 'pending'


def test_whole_amount_with_zero_cents_is_accepted(user, fake_gateway):
    result = PaymentInitiator(fake_gateway).initiate(user, '0712345678', '99.00')

    assert result.accepted
    assert result.transaction.amount == Decimal('99')


def test_bare_subscriber_number_is_normalized(user, fake_gateway):
    result = PaymentInitiator(fake_gateway).initiate(user, '712345678', 99)

    assert result.transaction.phone_number == '254712345678'
    fake_gateway.push_payment.assert_called_once_with('254712345678', Decimal('99'), result.reference)
