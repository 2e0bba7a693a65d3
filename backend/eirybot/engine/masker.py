# /eirybot/engine/masker.py

"""
PII masking for free text captured during a demo conversation.

Three passes always run, in this order, each replacing its matches with a
fixed token: email addresses, phone numbers, long digit runs (card numbers,
national ids). The tokens contain no digits and no '@', so masking already
masked text is a no-op.

Pure functions, no logging: the raw text must never reach a log line.
"""

import re
from typing import Any, Mapping, Optional

EMAIL_TOKEN = "[EMAIL]"
PHONE_TOKEN = "[PHONE]"
NUMBER_TOKEN = "[NUMBER]"

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
# Optional +country code, then 3-3-4 digit groups with space/dot/dash/paren separators
PHONE_RE = re.compile(r"\b(?:\+?(\d{1,3}))?[-. (]*(\d{3})[-. )]*(\d{3})[-. ]*(\d{4})\b")
# Anything that is still an 8+ digit run after the phone pass
LONG_NUMBER_RE = re.compile(r"\b\d{8,}\b")


def mask_pii(text: Optional[str]) -> Optional[str]:
    """Replaces emails, phone numbers and long numbers in `text` with tokens."""
    if not text or not isinstance(text, str):
        return text
    masked = EMAIL_RE.sub(EMAIL_TOKEN, text)
    masked = PHONE_RE.sub(PHONE_TOKEN, masked)
    masked = LONG_NUMBER_RE.sub(NUMBER_TOKEN, masked)
    return masked


def _mask_value(value: Any) -> Any:
    if isinstance(value, str):
        return mask_pii(value)
    if isinstance(value, Mapping):
        return mask_object(value)
    if isinstance(value, (list, tuple)):
        return [_mask_value(item) for item in value]
    return value


def mask_object(obj: Optional[Mapping[str, Any]]) -> Optional[dict]:
    """
    Returns a copy of `obj` with every string leaf masked.

    Nested mappings and lists are walked; numbers, booleans and None are
    copied unchanged. The input is never modified.
    """
    if not obj:
        return obj
    return {key: _mask_value(value) for key, value in obj.items()}
