import logging
from dataclasses import dataclass
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.utils import timezone

from catalog.services import get_package

from ..audit import log_payment_event
from ..exceptions import GatewayError
from ..models import Transaction
from ..utils import is_valid_phone, normalize_phone, parse_amount
from .settlement import settle

logger = logging.getLogger(__name__)

MAX_AMOUNT = Decimal('99999999')
ACCEPTED_MESSAGE = "STK push sent. Enter your M-PESA PIN on your phone to authorize the payment."


@dataclass
class InitiationResult:
    reference: str
    accepted: bool
    message: str
    transaction: Transaction = None


class PaymentInitiator:
    def __init__(self, gateway, notifier=None):
        self.gateway = gateway
        self.notifier = notifier

    def validate(self, phone, amount, package_id=None):
        if not is_valid_phone(phone):
            raise ValidationError("Invalid phone number format. Must be a valid Kenyan number", code='phone')
        amount = parse_amount(amount)
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be positive", code='amount')
        if amount > MAX_AMOUNT:
            raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}", code='amount')
        # M-Pesa only moves whole shillings.
        if amount != amount.to_integral_value():
            raise ValidationError("Amount must be a whole number of shillings", code='amount')
        amount = amount.quantize(Decimal('0.01'))
        package = None
        if package_id is not None:
            package = get_package(package_id)
            if package is None:
                raise ValidationError("Invalid package ID", code='package')
        return normalize_phone(phone), amount, package

    def initiate(self, user, phone, amount, package_id=None) -> InitiationResult:
        phone, amount, package = self.validate(phone, amount, package_id)

        # The record must exist before the gateway is contacted.
        txn = Transaction.objects.create_pending(
            user=user,
            phone_number=phone,
            amount=amount,
            package=package,
            metadata={'initiated_at': timezone.now().isoformat()},
        )
        if package is not None:
            logger.info("Payment %s for package %s by user %s", txn.reference, package.name, user.pk)

        try:
            result = self.gateway.push_payment(phone, amount, txn.reference)
        except GatewayError as e:
            logger.warning("STK push for %s failed: %s", txn.reference, e)
            txn, _ = settle(txn, Transaction.Status.FAILED, {
                'error_stage': 'auth' if e.error_type == 'auth_failure' else 'stk_push',
                'error_type': e.error_type,
                'error_code': None if e.code is None else str(e.code),
                'error_message': e.description,
            }, notifier=self.notifier)
            return InitiationResult(txn.reference, False, e.description or "Failed to initiate payment", txn)

        Transaction.objects.filter(pk=txn.pk).update(
            checkout_request_id=result.gateway_ref,
            merchant_request_id=result.merchant_request_id,
        )
        txn = Transaction.objects.merge_metadata(txn.pk, {
            'checkout_request_id': result.gateway_ref,
            'merchant_request_id': result.merchant_request_id,
            'stk_response': result.raw,
        })
        log_payment_event(txn, checkout_request_id=result.gateway_ref, response_description=result.description)
        return InitiationResult(txn.reference, True, ACCEPTED_MESSAGE, txn)
