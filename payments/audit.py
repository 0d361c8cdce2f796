import logging

audit_logger = logging.getLogger('payments.audit')


def log_payment_event(transaction, status=None, error=None, **metadata):
    """Write one structured audit entry for a payment attempt or settlement."""
    status = status or transaction.status
    audit_logger.log(
        logging.ERROR if status == 'failed' else logging.INFO,
        "Payment transaction",
        extra={
            'transaction_id': str(transaction.pk),
            'reference': transaction.reference,
            'user_id': transaction.user_id,
            'amount': str(transaction.amount),
            'status': status,
            'payment_method': transaction.payment_method,
            'error': error,
            'metadata': metadata or None,
        },
    )
