"""
CINC lead ingestion.

Legacy deliveries upsert straight into `leads` keyed by CINC's lead id.
v2 deliveries are staged in `cinc_lead_mapping` for the downstream
workflow to promote.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.api.webhook_sources import (
    CINC_LEAD_UPDATE,
    CINC_NEW_LEAD,
    CINC_NOTE_ADDED,
    parse_cinc_lead,
    parse_cinc_note,
    parse_cinc_v2_lead,
)
from relay.models.cinc_lead_mapping import CincLeadMapping
from relay.models.lead import Lead
from relay.services.workflow_trigger import trigger_workflow
from relay.utils.phone import mask_phone

logger = logging.getLogger(__name__)

CINC_V2_WORKFLOW = "cinc_ingestion_v2"


async def _lead_by_cinc_id(db: AsyncSession, cinc_lead_id: str):
    result = await db.execute(
        select(Lead).where(Lead.cinc_lead_id == cinc_lead_id).limit(1)
    )
    return result.scalar_one_or_none()


async def upsert_cinc_lead(db: AsyncSession, payload: dict) -> dict:
    """Create or update the lead named by a NEW_LEAD / LEAD_UPDATE delivery."""
    cinc_lead_id, fields = parse_cinc_lead(payload)

    lead = await _lead_by_cinc_id(db, cinc_lead_id)
    created = lead is None
    if created:
        lead = Lead(cinc_lead_id=cinc_lead_id, status="new")
        db.add(lead)
    for key, value in fields.items():
        setattr(lead, key, value)

    await db.commit()
    logger.info(
        "CINC lead %s %s (phone=%s)",
        cinc_lead_id, "created" if created else "updated", mask_phone(lead.phone_e164),
        extra={"lead_id": str(lead.id), "provider": "cinc"},
    )
    return {
        "message": "Lead processed successfully",
        "created": created,
        "lead": lead.to_dict(),
    }


async def add_cinc_note(db: AsyncSession, payload: dict) -> dict:
    """Append a CINC note to the lead's notes and touch last contact."""
    cinc_lead_id, note = parse_cinc_note(payload)
    if not note:
        return {"message": "Note event received", "processed": False}

    lead = await _lead_by_cinc_id(db, cinc_lead_id)
    if lead is None:
        logger.warning("Lead with cinc_lead_id %s not found for note addition", cinc_lead_id)
        return {"message": "Note event received", "processed": False}

    now = datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    lead.notes = f"{lead.notes or ''}\n\n[CINC Note - {stamp}]:\n{note}".strip()
    lead.last_contacted_at = now
    await db.commit()

    logger.info("Note added to CINC lead %s", cinc_lead_id, extra={"lead_id": str(lead.id)})
    return {"message": "Note event received", "lead_id": str(lead.id)}


async def handle_cinc_event(db: AsyncSession, payload: dict) -> dict:
    """Dispatch one legacy CINC delivery by event_type."""
    event_type = payload.get("event_type")
    if event_type in (CINC_NEW_LEAD, CINC_LEAD_UPDATE):
        result = await upsert_cinc_lead(db, payload)
    elif event_type == CINC_NOTE_ADDED:
        result = await add_cinc_note(db, payload)
    else:
        logger.info("Unhandled CINC event_type: %s", event_type, extra={"event_type": event_type})
        return {"event_type": event_type, "processed": False}

    result.setdefault("processed", True)
    result["event_type"] = event_type
    return result


async def ingest_cinc_v2_lead(db: AsyncSession, payload: dict) -> dict:
    """Stage a v2 delivery and hand it to the downstream workflow."""
    fields = parse_cinc_v2_lead(payload)

    mapping = CincLeadMapping(processing_status="pending", lead_data=payload, **fields)
    db.add(mapping)
    await db.commit()
    mapping_id = mapping.id

    logger.info(
        "CINC lead mapping created %s (phone=%s)", mapping_id, mask_phone(fields["phone_e164"]),
        extra={"provider": "cinc_v2"},
    )

    run = await trigger_workflow(
        db,
        CINC_V2_WORKFLOW,
        {"cinc_mapping_id": str(mapping_id), "payload": payload},
        pipeline_version="v2",
    )
    return {
        "processed": True,
        "mapping_id": str(mapping_id),
        "phone_e164": fields["phone_e164"],
        "makecom_enabled": run is not None,
    }
