"""
Shared fixtures.

Gateway and webhook HTTP traffic never leaves the process: clients get a
``MagicMock`` session whose ``get``/``post`` return ``FakeResponse`` objects.
"""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from catalog.models import DataPackage
from payments.models import Transaction, WebhookSubscription
from payments.services.base import PaymentGateway, PushResult
from payments.services.mpesa import MpesaDarajaClient, get_gateway_client
from payments.services.webhooks import WebhookNotifier

from .fakes import FakeResponse


@pytest.fixture(autouse=True)
def fresh_gateway_client():
    get_gateway_client.cache_clear()
    yield
    get_gateway_client.cache_clear()


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(username='buyer', password='Password123!')


@pytest.fixture
def other_user(django_user_model):
    return django_user_model.objects.create_user(username='someone-else', password='Password123!')


@pytest.fixture
def staff_user(django_user_model):
    return django_user_model.objects.create_user(username='ops', password='Password123!', is_staff=True)


@pytest.fixture
def package(db):
    return DataPackage.objects.create(
        name='Daily Premium', description='High-speed data for all your daily needs',
        price=Decimal('99'), validity_days=1, data_volume='1GB',
    )


@pytest.fixture
def http_session():
    return MagicMock()


@pytest.fixture
def mpesa_client(http_session):
    return MpesaDarajaClient(
        env='sandbox',
        consumer_key='key',
        consumer_secret='secret',
        shortcode='174379',
        passkey='passkey',
        callback_url='https://example.com/payments/mpesa/callback/',
        session=http_session,
        sleep=MagicMock(),
    )


@pytest.fixture
def fake_gateway():
    gateway = MagicMock(spec=PaymentGateway)
    gateway.push_payment.return_value = PushResult(
        accepted=True,
        gateway_ref='ws_CO_191020261200001',
        merchant_request_id='29115-34620561-1',
        description='Success. Request accepted for processing',
        raw={'ResponseCode': '0', 'CheckoutRequestID': 'ws_CO_191020261200001'},
    )
    return gateway


@pytest.fixture
def webhook_session():
    session = MagicMock()
    session.post.return_value = FakeResponse(200, {'ok': True})
    return session


@pytest.fixture
def notifier(webhook_session):
    return WebhookNotifier(session=webhook_session, timeout=10)


@pytest.fixture
def subscription(db):
    sub, _ = WebhookSubscription.objects.register(
        url='https://partner.example.com/hooks', events=['payment.completed'],
    )
    return sub


@pytest.fixture
def pending_transaction(user):
    txn = Transaction.objects.create_pending(user=user, phone_number='254712345678', amount=Decimal('99'))
    Transaction.objects.filter(pk=txn.pk).update(checkout_request_id='ws_CO_191020261200001')
    txn.refresh_from_db()
    return txn
