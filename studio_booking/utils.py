"""Shared utilities used across the booking engine."""

import re
from datetime import datetime

# Mainland mobile numbers: 11 digits, leading 1, second digit 3-9.
MOBILE_PATTERN = re.compile(r"^1[3-9]\d{9}$")

_COUNTRY_PREFIX = re.compile(r"^(?:\+|00)86(?=1\d{10}$)")


def normalize_phone(value: str) -> str:
    """Reduce a member's phone number to the bare digits the form stores.

    Spaces, dashes and dots are dropped and a +86/0086 country prefix in
    front of a mobile number is removed. Anything else is left for
    is_mobile_number to reject.

    Examples:
        >>> normalize_phone("138 0013 8000")
        '13800138000'
        >>> normalize_phone("+86 138-0013-8000")
        '13800138000'
    """
    compact = re.sub(r"[\s\-.]", "", value)
    return _COUNTRY_PREFIX.sub("", compact)


def is_mobile_number(value: str) -> bool:
    """Check an already normalized number against the mainland mobile format."""
    return bool(MOBILE_PATTERN.match(value))


def is_date_key(value: str) -> bool:
    """Validate a DateKey is a real calendar date in YYYY-MM-DD format."""
    if len(value) != 10:
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
        return True
    except ValueError:
        return False
