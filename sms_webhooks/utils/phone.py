import re

_MASK = "****"
_VISIBLE_PREFIX = 3
_VISIBLE_SUFFIX = 4


def clean_phone(raw_phone: str) -> str:
    """Strip channel prefixes (``sms:``/``whatsapp:``), spaces, dashes and parentheses."""
    if not raw_phone:
        return raw_phone

    phone = raw_phone.strip()
    phone = re.sub(r"^(whatsapp|sms):", "", phone)
    return re.sub(r"[()\s-]+", "", phone)


def mask_phone_number(raw_phone: str) -> str:
    """
    Mask a phone number for logging.

    Keeps the first 3 and last 4 characters, e.g. ``+15551234567`` -> ``+15*****4567``.
    Values too short to hide anything in between are fully masked.
    """
    phone = clean_phone(raw_phone or "")
    if len(phone) <= _VISIBLE_PREFIX + _VISIBLE_SUFFIX:
        return _MASK

    hidden = len(phone) - _VISIBLE_PREFIX - _VISIBLE_SUFFIX
    return phone[:_VISIBLE_PREFIX] + "*" * hidden + phone[-_VISIBLE_SUFFIX:]
