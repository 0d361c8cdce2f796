import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from django.utils import timezone

from ..exceptions import MalformedCallback
from ..models import Transaction
from ..utils import parse_amount
from .settlement import settle

logger = logging.getLogger(__name__)

SUCCESS_CODE = '0'


@dataclass
class Receipt:
    receipt_number: Optional[str] = None
    amount: Optional[Decimal] = None
    phone_number: Optional[str] = None
    transaction_date: Optional[str] = None

    @classmethod
    def from_items(cls, items):
        values = {}
        for item in items or []:
            if isinstance(item, dict) and 'Name' in item:
                values[item['Name']] = item.get('Value')

        amount = values.get('Amount', values.get('TransactionAmount'))
        phone = values.get('PhoneNumber')
        date = values.get('TransactionDate')
        return cls(
            receipt_number=values.get('MpesaReceiptNumber'),
            amount=parse_amount(amount) if amount is not None else None,
            phone_number=str(phone) if phone is not None else None,
            transaction_date=str(date) if date is not None else None,
        )

    def as_metadata(self):
        return {
            'receipt_number': self.receipt_number,
            'amount_paid': str(self.amount) if self.amount is not None else None,
            'paid_by': self.phone_number,
            'transaction_date': self.transaction_date,
        }


@dataclass
class CallbackSuccess:
    checkout_request_id: str
    merchant_request_id: Optional[str]
    result_code: str
    result_desc: str
    receipt: Receipt = field(default_factory=Receipt)


@dataclass
class CallbackFailure:
    checkout_request_id: str
    merchant_request_id: Optional[str]
    result_code: str
    result_desc: str


StkCallback = Union[CallbackSuccess, CallbackFailure]


def parse_callback(payload) -> StkCallback:
    """Turn the raw ``Body.stkCallback`` payload into a typed result."""
    try:
        stk = payload['Body']['stkCallback']
    except (KeyError, TypeError):
        raise MalformedCallback("Callback has no Body.stkCallback") from None
    if not isinstance(stk, dict):
        raise MalformedCallback("Body.stkCallback is not an object")

    checkout_request_id = stk.get('CheckoutRequestID')
    if not checkout_request_id or 'ResultCode' not in stk:
        raise MalformedCallback("Callback is missing CheckoutRequestID or ResultCode")

    result_code = str(stk['ResultCode'])
    common = {
        'checkout_request_id': checkout_request_id,
        'merchant_request_id': stk.get('MerchantRequestID'),
        'result_code': result_code,
        'result_desc': stk.get('ResultDesc') or '',
    }
    if result_code == SUCCESS_CODE:
        metadata = stk.get('CallbackMetadata') or {}
        return CallbackSuccess(receipt=Receipt.from_items(metadata.get('Item')), **common)
    return CallbackFailure(**common)


class ReconcileOutcome(enum.Enum):
    COMPLETED = 'completed'
    FAILED = 'failed'
    ALREADY_TERMINAL = 'already_terminal'
    UNMATCHED = 'unmatched'
    MALFORMED = 'malformed'


class CallbackReconciler:
    """
    Applies an STK callback to its transaction exactly once.

    The outcome is for logging and tests only; whatever it is, the HTTP layer
    acknowledges the gateway.
    """

    def __init__(self, notifier=None):
        self.notifier = notifier

    def reconcile(self, payload) -> ReconcileOutcome:
        try:
            callback = parse_callback(payload)
        except MalformedCallback as e:
            logger.error("Ignoring malformed M-Pesa callback: %s", e)
            return ReconcileOutcome.MALFORMED

        txn = Transaction.objects.filter(checkout_request_id=callback.checkout_request_id).first()
        if txn is None:
            logger.error("Transaction not found for CheckoutRequestID: %s", callback.checkout_request_id)
            return ReconcileOutcome.UNMATCHED

        if isinstance(callback, CallbackSuccess):
            status = Transaction.Status.COMPLETED
            metadata = {
                **callback.receipt.as_metadata(),
                'result_code': callback.result_code,
                'result_desc': callback.result_desc,
                'callback': payload,
            }
            if callback.receipt.amount is not None and callback.receipt.amount != txn.amount:
                logger.warning(
                    "Callback amount %s differs from requested %s for %s",
                    callback.receipt.amount, txn.amount, txn.reference,
                )
        else:
            status = Transaction.Status.FAILED
            metadata = {
                'result_code': callback.result_code,
                'result_desc': callback.result_desc,
                'error_stage': 'callback',
                'error_message': callback.result_desc,
                'failed_at': timezone.now().isoformat(),
                'callback': payload,
            }

        txn, applied = settle(txn, status, metadata, notifier=self.notifier)
        if not applied:
            Transaction.objects.append_metadata(txn.pk, 'late_callbacks', {
                'received_at': timezone.now().isoformat(),
                'result_code': callback.result_code,
                'result_desc': callback.result_desc,
                'callback': payload,
            })
            return ReconcileOutcome.ALREADY_TERMINAL

        logger.info("Transaction %s reconciled as %s", txn.reference, txn.status)
        return ReconcileOutcome.COMPLETED if status == Transaction.Status.COMPLETED else ReconcileOutcome.FAILED
