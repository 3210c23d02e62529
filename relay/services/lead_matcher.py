"""
Lead matcher - resolve the lead behind a call from its phone numbers.

Candidates are tried in priority order (from-number before to-number).
When none matches, a placeholder lead is created: a call means the person
has been contacted, so it starts in "contacted" status. Creation errors
propagate; a conversation is never dropped for lack of a lead.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.phone_lead_mapping import PhoneLeadMapping
from relay.services.pipeline_targets import PipelineTarget
from relay.utils.phone import mask_phone, normalize_phone

logger = logging.getLogger(__name__)

PLACEHOLDER_FIRST_NAME = "Unknown"
PLACEHOLDER_LAST_NAME = "Caller"


def candidate_phones(phones: list[Optional[str]]) -> list[tuple[str, str]]:
    """
    (raw, normalized) pairs in priority order. Empties are dropped and
    numbers that normalize to the same value are kept once.
    """
    pairs = []
    seen = set()
    for phone in phones:
        normalized = normalize_phone(phone)
        if normalized and normalized not in seen:
            seen.add(normalized)
            pairs.append((phone.strip(), normalized))
    return pairs


async def _find_lead_id(
    db: AsyncSession, target: PipelineTarget, phone: str,
) -> Optional[uuid.UUID]:
    if target.use_phone_mapping:
        result = await db.execute(
            select(PhoneLeadMapping.lead_id).where(
                PhoneLeadMapping.phone_e164 == phone,
                PhoneLeadMapping.lead_id.isnot(None),
            ).limit(1)
        )
        lead_id = result.scalar_one_or_none()
        if lead_id is not None:
            return lead_id

    lead_model = target.lead_model
    result = await db.execute(
        select(lead_model.id)
        .where(lead_model.phone_e164 == phone)
        .order_by(lead_model.created_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def match_or_create_lead(
    db: AsyncSession,
    target: PipelineTarget,
    phones: list[Optional[str]],
    source: str,
) -> dict:
    """
    Find or create the lead for a call.

    Returns: {"lead_id": UUID|None, "created": bool,
              "matched_phone": str|None, "matched_raw": str|None}
    The new lead is flushed, not committed; the caller owns the transaction.
    """
    candidates = candidate_phones(phones)
    if not candidates:
        logger.info("No phone numbers on call, conversation will be unlinked")
        return {"lead_id": None, "created": False, "matched_phone": None, "matched_raw": None}

    for raw, phone in candidates:
        lead_id = await _find_lead_id(db, target, phone)
        if lead_id is not None:
            logger.info(
                "Matched lead %s by phone %s", lead_id, mask_phone(phone),
                extra={"lead_id": str(lead_id), "pipeline": target.version},
            )
            return {"lead_id": lead_id, "created": False, "matched_phone": phone, "matched_raw": raw}

    first_raw, first = candidates[0]
    lead = target.lead_model(
        first_name=PLACEHOLDER_FIRST_NAME,
        last_name=PLACEHOLDER_LAST_NAME,
        phone_raw=first_raw,
        phone_e164=first if first.startswith("+") else None,
        source=source,
        status="contacted",
        last_contacted_at=datetime.now(timezone.utc),
    )
    db.add(lead)
    await db.flush()

    logger.info(
        "Created placeholder lead %s for unknown caller %s",
        lead.id, mask_phone(first),
        extra={"lead_id": str(lead.id), "pipeline": target.version},
    )
    return {"lead_id": lead.id, "created": True, "matched_phone": first, "matched_raw": first_raw}


async def remember_phone_mapping(
    db: AsyncSession, phone: str, lead_id: uuid.UUID, phone_raw: Optional[str] = None,
) -> None:
    """
    Add a phone_lead_mapping row for a freshly created placeholder lead.
    Best-effort: failures are logged and rolled back.
    """
    try:
        existing = await db.get(PhoneLeadMapping, phone)
        if existing is not None:
            return
        db.add(PhoneLeadMapping(
            phone_e164=phone,
            phone_raw=phone_raw or phone,
            lead_id=lead_id,
            lead_name=f"{PLACEHOLDER_FIRST_NAME} {PLACEHOLDER_LAST_NAME}",
        ))
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(
            "Failed to create phone mapping for %s: %s", mask_phone(phone), str(e),
            extra={"lead_id": str(lead_id)},
        )
