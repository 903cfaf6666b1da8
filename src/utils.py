"""Shared utilities used across the assistant core."""

import re
import time


def normalize_phone(value: str) -> str:
    """Normalize an Indonesian phone number to the local 08xx form.

    Examples:
        >>> normalize_phone("0812 3456 7890")
        '081234567890'
        >>> normalize_phone("+62 812-3456-7890")
        '081234567890'
    """
    digits = re.sub(r"[^\d]", "", value.strip())
    if digits.startswith("62"):
        return "0" + digits[2:]
    return digits


def slug_to_label(slug: str) -> str:
    """Turn a category slug such as ``lampu_mati`` into ``lampu mati``."""
    return slug.replace("_", " ").strip()


def elapsed_ms(started: float) -> int:
    """Milliseconds since a ``time.monotonic()`` timestamp."""
    return int((time.monotonic() - started) * 1000)
