import logging
import secrets
import uuid

from django.conf import settings
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from .utils import generate_reference

logger = logging.getLogger(__name__)

REFERENCE_ATTEMPTS = 5


class TransactionManager(models.Manager):
    def create_pending(self, *, user, phone_number, amount, package=None,
                       payment_method='mpesa', metadata=None, reference_factory=generate_reference):
        """Persist a pending transaction under a fresh, unique reference."""
        for _ in range(REFERENCE_ATTEMPTS):
            reference = reference_factory()
            try:
                with transaction.atomic():
                    return self.create(
                        reference=reference,
                        user=user,
                        package=package,
                        phone_number=phone_number,
                        amount=amount,
                        payment_method=payment_method,
                        status=Transaction.Status.PENDING,
                        metadata=metadata or {},
                    )
            except IntegrityError:
                logger.warning("Reference %s already taken, generating another", reference)
        raise IntegrityError(f"Could not allocate a unique reference after {REFERENCE_ATTEMPTS} attempts")

    def transition(self, pk, status, metadata=None):
        """
        Move a pending transaction to a terminal status.

        The status change is a conditional UPDATE on ``status='pending'``, so of
        two concurrent writers only one wins. Returns ``(transaction, applied)``;
        metadata is merged only when the transition was applied.
        """
        if status not in Transaction.TERMINAL_STATUSES:
            raise ValueError(f"{status!r} is not a terminal status")

        with transaction.atomic():
            applied = self.filter(pk=pk, status=Transaction.Status.PENDING).update(
                status=status, updated_at=timezone.now(),
            ) == 1
            txn = self.select_for_update().get(pk=pk)
            if applied and metadata:
                txn.metadata = {**txn.metadata, **metadata}
                txn.save(update_fields=['metadata', 'updated_at'])
        return txn, applied

    def merge_metadata(self, pk, updates):
        with transaction.atomic():
            txn = self.select_for_update().get(pk=pk)
            txn.metadata = {**txn.metadata, **updates}
            txn.save(update_fields=['metadata', 'updated_at'])
        return txn

    def append_metadata(self, pk, key, entry):
        with transaction.atomic():
            txn = self.select_for_update().get(pk=pk)
            entries = list(txn.metadata.get(key) or [])
            entries.append(entry)
            txn.metadata = {**txn.metadata, key: entries}
            txn.save(update_fields=['metadata', 'updated_at'])
        return txn


class Transaction(models.Model):
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'

    TERMINAL_STATUSES = (Status.COMPLETED, Status.FAILED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference = models.CharField(max_length=32, unique=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='transactions')
    package = models.ForeignKey(
        'catalog.DataPackage', on_delete=models.PROTECT, related_name='transactions', blank=True, null=True,
    )
    phone_number = models.CharField(max_length=13)  # e.g. 2547XXXXXXXX
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=10, default='KES')
    payment_method = models.CharField(max_length=20, default='mpesa')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)

    # Daraja correlation ids, known only once the push request is accepted
    checkout_request_id = models.CharField(max_length=128, blank=True, null=True, db_index=True)
    merchant_request_id = models.CharField(max_length=128, blank=True, null=True)

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TransactionManager()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.reference} {self.phone_number} - {self.amount} - {self.status}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def failure_reason(self):
        return self.metadata.get('error_message')


class WebhookSubscriptionManager(models.Manager):
    def register(self, url, events, description=''):
        """Create a subscription. The secret is handed back here and nowhere else."""
        secret = secrets.token_hex(32)
        subscription = self.create(
            url=url,
            events=sorted(set(events)),
            description=description or '',
            secret=secret,
        )
        return subscription, secret

    def for_event(self, event):
        return [s for s in self.filter(is_active=True) if s.subscribes_to(event)]


class WebhookSubscription(models.Model):
    class Event(models.TextChoices):
        PAYMENT_COMPLETED = 'payment.completed', 'Payment completed'
        PAYMENT_FAILED = 'payment.failed', 'Payment failed'

    url = models.URLField(max_length=500)
    events = models.JSONField(default=list)
    description = models.CharField(max_length=255, blank=True)
    secret = models.CharField(max_length=64, editable=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = WebhookSubscriptionManager()

    def __str__(self):
        return f"{self.url} ({', '.join(self.events)})"

    def subscribes_to(self, event):
        return event in (self.events or [])
