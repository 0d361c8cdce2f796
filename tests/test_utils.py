import re
from datetime import datetime, timezone as dt_timezone

import pytest

from payments.utils import generate_reference, is_valid_phone, mpesa_timestamp, normalize_phone, parse_amount


@pytest.mark.parametrize("raw, expected", [
    ("0712345678", "254712345678"),
    ("0112345678", "254112345678"),
    ("254712345678", "254712345678"),
    ("+254712345678", "254712345678"),
    ("712345678", "254712345678"),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("phone, valid", [
    ("0712345678", True),
    ("0112345678", True),
    ("254712345678", True),
    ("+254712345678", True),
    ("712345678", True),
    ("112345678", True),
    ("0712 345-678", True),
    ("0812345678", False),
    ("812345678", False),
    ("071234567", False),
    ("2547123456789", False),
    ("", False),
    (None, False),
])
def test_is_valid_phone(phone, valid):
    assert is_valid_phone(phone) is valid


def test_parse_amount_rejects_non_numbers():
    assert parse_amount("abc") is None
    assert parse_amount(None) is None
    assert parse_amount("NaN") is None
    assert str(parse_amount(99)) == "99"


def test_generate_reference_format():
    now = datetime(2026, 10, 19, 9, 5, 7, tzinfo=dt_timezone.utc)
    reference = generate_reference(now=now, prefix="DS")
    assert re.fullmatch(r"DS20261019090507\d{1,3}", reference)
    assert 0 <= int(reference[16:]) <= 999


def test_generate_reference_uses_configured_prefix(settings):
    settings.PAYMENT_REFERENCE_PREFIX = "XY"
    assert generate_reference().startswith("XY")


def test_mpesa_timestamp_is_in_local_time(settings):
    settings.TIME_ZONE = "Africa/Nairobi"
    now = datetime(2026, 10, 19, 9, 5, 7, tzinfo=dt_timezone.utc)
    assert mpesa_timestamp(now) == "20261019120507"
