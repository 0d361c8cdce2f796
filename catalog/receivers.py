import logging

from django.dispatch import receiver

from payments.signals import payment_completed

logger = logging.getLogger(__name__)


@receiver(payment_completed)
def provision_bundle(sender, transaction, **kwargs):
    # Activation with the telecom provider happens outside this service.
    if transaction.package_id is None:
        return
    logger.info(
        "Provisioning %s for user %s (ref %s)",
        transaction.package, transaction.user_id, transaction.reference,
    )
