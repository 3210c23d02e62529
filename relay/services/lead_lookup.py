"""
Lead lookups for the voice agent and the dashboard.

The phone lookup primes the voice agent before it greets a caller: who the
caller is plus a small greeting context derived from CINC data.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.errors import LookupMissError, PayloadValidationError
from relay.models.lead import Lead
from relay.models.phone_lead_mapping import PhoneLeadMapping
from relay.utils.phone import mask_phone, normalize_phone, normalize_phone_strict

logger = logging.getLogger(__name__)


def build_greeting_context(cinc_data: Optional[dict], property_interests: Optional[dict]) -> dict:
    cinc_data = cinc_data or {}
    criteria = (property_interests or {}).get("search_criteria") or {}
    return {
        "has_favorited_properties": len(cinc_data.get("favorited_properties") or []) > 0,
        "buyer_timeline": cinc_data.get("buyer_timeline") or "not_specified",
        "preferred_cities": criteria.get("preferred_cities") or [],
        "price_range": {
            "min": criteria.get("min_price"),
            "max": criteria.get("max_price"),
        },
    }


def build_lead_context(mapping: PhoneLeadMapping) -> dict:
    lead = mapping.lead
    return {
        "lead_id": str(lead.id) if lead else None,
        "lead_name": mapping.lead_name,
        "first_name": lead.first_name if lead else None,
        "last_name": lead.last_name if lead else None,
        "email": lead.email if lead else None,
        "status": lead.status if lead else None,
        "source": lead.source if lead else None,
        "cinc_lead_id": lead.cinc_lead_id if lead else None,
        "property_interests": mapping.property_interests or {},
        "cinc_data": mapping.cinc_data or {},
        "last_updated": mapping.last_updated.isoformat() if mapping.last_updated else None,
        "phone_raw": mapping.phone_raw,
        "phone_e164": mapping.phone_e164,
        "greeting_context": build_greeting_context(mapping.cinc_data, mapping.property_interests),
    }


async def lookup_phone_context(db: AsyncSession, phone_number: Optional[str]) -> dict:
    """
    Find the mapping row for a caller's phone.
    Raises PayloadValidationError without a phone, LookupMissError when unmapped.
    """
    if not phone_number:
        raise PayloadValidationError("phone_number is required")

    phone = normalize_phone(phone_number)
    result = await db.execute(
        select(PhoneLeadMapping).where(PhoneLeadMapping.phone_e164 == phone).limit(1)
    )
    mapping = result.unique().scalar_one_or_none()
    if mapping is None:
        logger.info("No lead mapping for %s", mask_phone(phone))
        raise LookupMissError("No lead found for this phone number")

    return build_lead_context(mapping)


async def lookup_lead_by_phone(db: AsyncSession, phone: Optional[str]) -> dict:
    """Dashboard lead lookup. Input must normalize to a real E.164 number."""
    if not phone:
        raise PayloadValidationError("Phone query parameter is required")

    phone_e164 = normalize_phone_strict(phone)
    if not phone_e164:
        raise PayloadValidationError("Invalid phone number format")

    result = await db.execute(
        select(Lead)
        .where(Lead.phone_e164 == phone_e164)
        .order_by(Lead.created_at.asc())
        .limit(1)
    )
    lead = result.scalar_one_or_none()
    if lead is None:
        raise LookupMissError("Lead not found")
    return lead.to_dict()
