"""
Phone number normalization - E.164 format using the phonenumbers library.
Handles parentheses, dashes, dots, spaces and missing country code
(numbers without one are parsed against the US region).

Webhook processing never aborts on a malformed number: normalize_phone()
hands the raw input back when it cannot be parsed, and the caller decides
whether a missing canonical phone matters. Read endpoints that must reject
bad input use normalize_phone_strict().
"""
import logging
from typing import Optional

import phonenumbers

logger = logging.getLogger(__name__)

DEFAULT_REGION = "US"


def _parse_e164(phone: str, region: str) -> Optional[str]:
    try:
        parsed = phonenumbers.parse(phone, region)
    except phonenumbers.NumberParseException:
        return None
    # Full-length numbers outside assigned ranges (555 test exchanges) still
    # count; local-only 7-digit numbers do not.
    if not (
        phonenumbers.is_valid_number(parsed)
        or phonenumbers.is_possible_number_with_reason(parsed) == phonenumbers.ValidationResult.IS_POSSIBLE
    ):
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def normalize_phone(phone: Optional[str], default_region: str = DEFAULT_REGION) -> Optional[str]:
    """
    Normalize a phone number to E.164 format.

    - (555) 123-4567 -> +15551234567
    - 555.123.4567   -> +15551234567
    - +15551234567   -> +15551234567

    Returns None for empty input and the original string when parsing fails.
    """
    if not phone or not phone.strip():
        return None

    normalized = _parse_e164(phone.strip(), default_region)
    if normalized is None:
        logger.debug("Could not normalize phone %s, keeping raw value", mask_phone(phone))
        return phone
    return normalized


def normalize_phone_strict(phone: Optional[str], default_region: str = DEFAULT_REGION) -> Optional[str]:
    """Like normalize_phone() but returns None when the number does not parse."""
    if not phone or not phone.strip():
        return None
    return _parse_e164(phone.strip(), default_region)


def phone_pair(phone: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Return (phone_raw, phone_e164) for storage on a lead or mapping row."""
    if not phone:
        return None, None
    return phone, normalize_phone_strict(phone)


def mask_phone(phone: Optional[str]) -> str:
    """Mask phone for logging - show first 6 characters + ***."""
    if not phone:
        return "unknown"
    if len(phone) > 6:
        return phone[:6] + "***"
    return phone
