from django.dispatch import Signal

# Both are sent with ``transaction=<Transaction>`` once the terminal state is written.
payment_completed = Signal()
payment_failed = Signal()
