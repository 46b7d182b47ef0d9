"""Phone number normalisation to E.164."""
from __future__ import annotations

import re

DEFAULT_COUNTRY_CODE = "1"


def normalize_phone(raw: str, default_country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Normalise ``raw`` to E.164.

    Ten-digit numbers get ``default_country_code``; numbers written with a
    leading ``+`` keep their own country code.

    Raises:
        ValueError: not a plausible phone number
    """
    value = (raw or "").strip()
    digits = re.sub(r"\D", "", value)
    if value.startswith("+"):
        if not 8 <= len(digits) <= 15:
            raise ValueError(f"Invalid phone number: {raw}")
        return f"+{digits}"
    if len(digits) == 10:
        return f"+{default_country_code}{digits}"
    if len(digits) == 11 and digits.startswith(default_country_code):
        return f"+{digits}"
    raise ValueError(f"Invalid phone number: {raw}")
