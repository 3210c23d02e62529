"""
Call pipeline - the conversation state machine shared by every provider
and every pipeline version.

    call_started      -> create conversation (active), match/create lead
    call_ended        -> active -> completed | error, stamp lead contact
    call_analyzed     -> merge sentiment/analysis, state unchanged
    transcript_update -> overwrite transcript, state unchanged

Conversations are keyed by the provider's call id. Updates for a call id
we never saw are hard errors so the provider retries.

Primary writes (lead, conversation) are committed before any secondary
write. Secondary writes (extraction shell, phone mapping, transcript
messages, workflow run) commit separately and only log on failure.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from relay.errors import LookupMissError, PayloadValidationError
from relay.integrations.call_provider_base import (
    CALL_ANALYZED,
    CALL_ENDED,
    CALL_STARTED,
    TRANSCRIPT_UPDATE,
    CallProviderAdapter,
)
from relay.models.conversation_extraction import ConversationExtraction
from relay.services.lead_matcher import match_or_create_lead, remember_phone_mapping
from relay.services.pipeline_targets import PipelineTarget
from relay.services.transcripts import materialize_messages, upsert_live_messages
from relay.services.workflow_trigger import trigger_workflow

logger = logging.getLogger(__name__)


def _summary(conversation, event_type: str, target: PipelineTarget, **extra) -> dict:
    """Response fields, captured while the ORM object is still loaded."""
    summary = {
        "event_type": event_type,
        "pipeline": target.version,
        "conversation_id": str(conversation.id),
        "lead_id": str(conversation.lead_id) if conversation.lead_id else None,
        "call_status": conversation.call_status,
    }
    summary.update(extra)
    return summary


async def _find_conversation(db: AsyncSession, target: PipelineTarget, call_id: str):
    model = target.conversation_model
    result = await db.execute(
        select(model).where(model.provider_call_id == call_id).limit(1)
    )
    return result.scalar_one_or_none()


async def _require_conversation(
    db: AsyncSession, target: PipelineTarget, call_id: str, event_type: str,
):
    conversation = await _find_conversation(db, target, call_id)
    if conversation is None:
        logger.error(
            "No conversation for %s call_id=%s", event_type, call_id,
            extra={"call_id": call_id, "event_type": event_type, "pipeline": target.version},
        )
        raise LookupMissError(f"Conversation not found for call_id {call_id}")
    return conversation


async def _create_extraction_shell(
    db: AsyncSession,
    conversation_id: uuid.UUID,
    lead_id: Optional[uuid.UUID],
    target: PipelineTarget,
) -> None:
    try:
        db.add(ConversationExtraction(
            conversation_id=conversation_id,
            pipeline_version=target.version,
            lead_id=lead_id,
            extraction_version=target.version,
            status="pending",
        ))
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(
            "Failed to create extraction shell: %s", str(e),
            extra={"conversation_id": str(conversation_id)},
        )


async def _call_started(
    db: AsyncSession,
    adapter: CallProviderAdapter,
    target: PipelineTarget,
    payload: dict,
    call_id: str,
) -> dict:
    existing = await _find_conversation(db, target, call_id)
    if existing is not None:
        logger.info(
            "Conversation already exists for call %s, skipping creation", call_id,
            extra={"call_id": call_id, "pipeline": target.version},
        )
        return _summary(existing, CALL_STARTED, target, duplicate=True)

    call = adapter.extract_call(payload)
    details = adapter.extract_call_details(call)
    match = await match_or_create_lead(
        db, target, adapter.extract_phones(payload), adapter.lead_source,
    )

    conversation = target.conversation_model(
        provider=adapter.provider,
        provider_call_id=call_id,
        lead_id=match["lead_id"],
        agent_id=details["agent_id"],
        direction=details["direction"],
        call_status="active",
        extraction_status="pending",
        started_at=details["started_at"] or datetime.now(timezone.utc),
        call_data=call,
    )
    db.add(conversation)
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent delivery of the same call_started won the insert
        await db.rollback()
        existing = await _find_conversation(db, target, call_id)
        if existing is None:
            raise
        return _summary(existing, CALL_STARTED, target, duplicate=True)

    summary = _summary(
        conversation, CALL_STARTED, target,
        duplicate=False, lead_created=match["created"],
    )
    conversation_id = conversation.id
    lead_id = match["lead_id"]
    logger.info(
        "Created active conversation for call %s", call_id,
        extra={
            "call_id": call_id,
            "conversation_id": str(conversation_id),
            "lead_id": str(lead_id) if lead_id else None,
            "pipeline": target.version,
        },
    )

    await _create_extraction_shell(db, conversation_id, lead_id, target)

    phone = match["matched_phone"]
    if match["created"] and target.use_phone_mapping and phone and phone.startswith("+"):
        await remember_phone_mapping(db, phone, lead_id, match["matched_raw"])

    return summary


async def _call_ended(
    db: AsyncSession,
    adapter: CallProviderAdapter,
    target: PipelineTarget,
    payload: dict,
    call_id: str,
) -> dict:
    conversation = await _require_conversation(db, target, call_id, CALL_ENDED)

    call = adapter.extract_call(payload)
    try:
        full_call = await adapter.fetch_call(call_id)
    except Exception as e:
        logger.warning(
            "Could not fetch full call record, using webhook data: %s", str(e),
            extra={"call_id": call_id, "provider": adapter.provider},
        )
        full_call = None
    if full_call:
        call = {**call, **full_call}

    details = adapter.extract_call_details(call)
    now = datetime.now(timezone.utc)

    conversation.call_status = "error" if details["errored"] else "completed"
    conversation.error_reason = details["error_reason"]
    conversation.ended_at = details["ended_at"] or now
    if details["duration_seconds"] is not None:
        conversation.duration_seconds = details["duration_seconds"]
    if details["recording_url"]:
        conversation.recording_url = details["recording_url"]
    if details["transcript"]:
        conversation.transcript = details["transcript"]
    if details["call_analysis"] is not None:
        conversation.call_analysis = details["call_analysis"]
    if details["sentiment_score"] is not None:
        conversation.sentiment_score = details["sentiment_score"]
    if details["agent_id"]:
        conversation.agent_id = details["agent_id"]
    conversation.call_data = call

    transcript = conversation.transcript
    conversation.extraction_status = "pending" if transcript and transcript.strip() else "skipped"

    if conversation.lead_id is not None:
        lead = await db.get(target.lead_model, conversation.lead_id)
        if lead is not None:
            lead.last_contacted_at = now

    await db.commit()

    summary = _summary(conversation, CALL_ENDED, target)
    conversation_id = conversation.id
    lead_id = conversation.lead_id
    logger.info(
        "Call %s ended with status %s", call_id, summary["call_status"],
        extra={"call_id": call_id, "conversation_id": str(conversation_id), "pipeline": target.version},
    )

    await materialize_messages(
        db, conversation_id, target.version, details["utterances"], transcript,
    )
    await trigger_workflow(
        db,
        f"{adapter.provider}_processing_{target.version}",
        {
            "call_id": call_id,
            "call_status": summary["call_status"],
            "transcript": transcript,
            "call_analysis": details["call_analysis"],
        },
        conversation_id=conversation_id,
        lead_id=lead_id,
        pipeline_version=target.version,
    )
    return summary


async def _call_analyzed(
    db: AsyncSession,
    adapter: CallProviderAdapter,
    target: PipelineTarget,
    payload: dict,
    call_id: str,
) -> dict:
    conversation = await _require_conversation(db, target, call_id, CALL_ANALYZED)
    details = adapter.extract_call_details(adapter.extract_call(payload))

    if details["sentiment_score"] is not None:
        conversation.sentiment_score = details["sentiment_score"]
    if details["transcript"]:
        conversation.transcript = details["transcript"]
    if details["call_analysis"] is not None:
        conversation.call_analysis = {**(conversation.call_analysis or {}), **details["call_analysis"]}

    await db.commit()
    return _summary(conversation, CALL_ANALYZED, target)


async def _transcript_update(
    db: AsyncSession,
    adapter: CallProviderAdapter,
    target: PipelineTarget,
    payload: dict,
    call_id: str,
) -> dict:
    conversation = await _require_conversation(db, target, call_id, TRANSCRIPT_UPDATE)
    details = adapter.extract_call_details(adapter.extract_call(payload))

    transcript = adapter.extract_transcript(payload)
    if transcript is not None:
        conversation.transcript = transcript
    await db.commit()

    summary = _summary(conversation, TRANSCRIPT_UPDATE, target)
    await upsert_live_messages(
        db, conversation.id, target.version, details["live_utterances"],
    )
    return summary


_HANDLERS = {
    CALL_STARTED: _call_started,
    CALL_ENDED: _call_ended,
    CALL_ANALYZED: _call_analyzed,
    TRANSCRIPT_UPDATE: _transcript_update,
}


async def handle_call_event(
    db: AsyncSession,
    adapter: CallProviderAdapter,
    target: PipelineTarget,
    payload: dict,
) -> dict:
    """
    Apply one provider webhook to the conversation state machine.

    Returns a summary dict. Unknown event types return
    {"event_type": ..., "processed": False} and touch nothing.

    Raises:
        PayloadValidationError: known event without a call id.
        LookupMissError: update event for a call id with no conversation.
    """
    event_type = adapter.extract_event_type(payload)
    handler = _HANDLERS.get(event_type)
    if handler is None:
        logger.info(
            "Unknown %s event type: %s", adapter.provider, event_type,
            extra={"provider": adapter.provider, "event_type": event_type},
        )
        return {"event_type": event_type, "processed": False}

    call_id = adapter.extract_call_id(payload)
    if not call_id:
        raise PayloadValidationError(f"{event_type} payload has no call_id")

    summary = await handler(db, adapter, target, payload, call_id)
    summary["processed"] = True
    return summary
