from __future__ import annotations

import re
from typing import Optional

from django.conf import settings

MIN_E164_LENGTH = 8


def default_country_code() -> str:
    code = str(getattr(settings, "AWS_SNS_DEFAULT_COUNTRY_CODE", None) or "+1").strip()
    return code if code.startswith("+") else f"+{code}"


def normalize_phone_number(raw: Optional[str]) -> Optional[str]:
    """Normalize a donor's mobile number to E.164.

    Accepts inputs like:
    - "+919385426550"
    - "9385426550" (uses AWS_SNS_DEFAULT_COUNTRY_CODE)
    - "+1 (555) 111-2222"
    - "0555 111 2222" (trunk zero dropped)

    Returns None if the number is missing or too short to dial.
    """

    if not raw:
        return None

    cleaned = re.sub(r"[\s\-().]+", "", str(raw).strip())

    if cleaned.startswith("+"):
        digits = "+" + re.sub(r"[^0-9]", "", cleaned)
        return digits if len(digits) >= MIN_E164_LENGTH else None

    digits_only = re.sub(r"[^0-9]", "", cleaned)
    if not digits_only:
        return None

    if digits_only.startswith("00"):
        candidate = "+" + digits_only[2:]
        return candidate if len(candidate) >= MIN_E164_LENGTH else None

    digits_only = digits_only.lstrip("0")
    if not digits_only:
        return None

    code = default_country_code()

    # Country code typed without the '+'
    if digits_only.startswith(code.lstrip("+")) and len(digits_only) > 10:
        candidate = f"+{digits_only}"
    else:
        candidate = f"{code}{digits_only}"
    return candidate if len(candidate) >= MIN_E164_LENGTH else None
