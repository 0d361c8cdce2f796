from dataclasses import dataclass

from ..models import Transaction

MESSAGES = {
    Transaction.Status.COMPLETED.value: "Payment completed successfully",
    Transaction.Status.PENDING.value: "Payment is still being processed",
    Transaction.Status.FAILED.value: "Payment failed",
}


@dataclass
class StatusResult:
    found: bool
    reference: str
    status: str = None
    message: str = "Transaction not found"
    transaction: Transaction = None

    @property
    def success(self):
        return self.status == Transaction.Status.COMPLETED


def get_status(reference, user=None) -> StatusResult:
    """
    Read the committed state of a transaction.

    With ``user`` given, transactions owned by someone else are reported as
    not found unless the user is staff.
    """
    queryset = Transaction.objects.all()
    if user is not None and not user.is_staff:
        queryset = queryset.filter(user=user)
    txn = queryset.filter(reference=reference).first()
    if txn is None:
        return StatusResult(found=False, reference=reference)

    message = MESSAGES[txn.status]
    if txn.status == Transaction.Status.FAILED and txn.failure_reason:
        message = f"{message}: {txn.failure_reason}"
    return StatusResult(found=True, reference=txn.reference, status=txn.status, message=message, transaction=txn)
