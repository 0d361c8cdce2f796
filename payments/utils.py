import random
import re
from datetime import timezone as dt_timezone
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.utils import timezone

INTERNATIONAL_PHONE_RE = re.compile(r'^254(7|1)\d{8}$')


def normalize_phone(phone: str) -> str:
    """Return the number in 2547XXXXXXXX form. Does not validate."""
    phone = re.sub(r'[\s-]', '', str(phone or ''))
    if phone.startswith('+'):
        phone = phone[1:]
    if phone.startswith('0'):
        return '254' + phone[1:]
    if not phone.startswith('254'):
        return '254' + phone
    return phone


def is_valid_phone(phone: str) -> bool:
    """Accepts 07XX, 01XX, 2547XX, +2547XX and bare 7XX forms."""
    return bool(INTERNATIONAL_PHONE_RE.match(normalize_phone(phone)))


def parse_amount(value):
    """Coerce to Decimal, returning None for anything that is not a finite number."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not amount.is_finite():
        return None
    return amount


def mpesa_timestamp(now=None):
    now = timezone.localtime(now)
    return now.strftime('%Y%m%d%H%M%S')


def generate_reference(now=None, prefix=None):
    # <prefix><YYYYMMDDHHMMSS in UTC><0-999>
    prefix = settings.PAYMENT_REFERENCE_PREFIX if prefix is None else prefix
    now = now or timezone.now()
    return f"{prefix}{now.astimezone(dt_timezone.utc):%Y%m%d%H%M%S}{random.randint(0, 999)}"
