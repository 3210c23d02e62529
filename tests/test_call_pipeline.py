"""
Tests for the conversation state machine: call_started, call_ended,
call_analyzed and transcript_update against both pipeline targets.
"""
import uuid

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import func, select

from conftest import retell_event, set_flags
from relay.errors import LookupMissError, PayloadValidationError
from relay.integrations.retell import RetellAdapter
from relay.models.conversation import Conversation, ConversationV2
from relay.models.conversation_extraction import ConversationExtraction
from relay.models.conversation_message import ConversationMessage
from relay.models.lead import Lead
from relay.models.phone_lead_mapping import PhoneLeadMapping
from relay.models.workflow_run import WorkflowRun
from relay.services.call_pipeline import handle_call_event
from relay.services.pipeline_targets import LEGACY_TARGET, V2_TARGET

adapter = RetellAdapter()


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


class TestCallStarted:
    @pytest.mark.asyncio
    async def test_creates_active_conversation_and_lead(self, db):
        result = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))

        assert result["processed"] is True
        assert result["duplicate"] is False
        assert result["lead_created"] is True
        assert result["call_status"] == "active"

        conv = (await db.execute(select(Conversation))).scalar_one()
        assert conv.provider == "retell"
        assert conv.provider_call_id == "call_abc123"
        assert conv.agent_id == "agent_001"
        assert conv.extraction_status == "pending"
        assert str(conv.lead_id) == result["lead_id"]

    @pytest.mark.asyncio
    async def test_opens_extraction_shell(self, db):
        result = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))

        shell = (await db.execute(select(ConversationExtraction))).scalar_one()
        assert str(shell.conversation_id) == result["conversation_id"]
        assert shell.status == "pending"
        assert shell.pipeline_version == "legacy"

    @pytest.mark.asyncio
    async def test_new_caller_gets_phone_mapping(self, db):
        result = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))

        mapping = await db.get(PhoneLeadMapping, "+15125559876")
        assert mapping is not None
        assert str(mapping.lead_id) == result["lead_id"]

    @pytest.mark.asyncio
    async def test_raw_caller_number_kept_on_lead_and_mapping(self, db):
        result = await handle_call_event(
            db, adapter, LEGACY_TARGET, retell_event("call_started", from_number="(512) 555-9876"),
        )

        lead = await db.get(Lead, uuid.UUID(result["lead_id"]))
        assert lead.phone_raw == "(512) 555-9876"
        assert lead.phone_e164 == "+15125559876"
        mapping = await db.get(PhoneLeadMapping, "+15125559876")
        assert mapping.phone_raw == "(512) 555-9876"

    @pytest.mark.asyncio
    async def test_links_existing_lead(self, db):
        lead = Lead(first_name="Dana", phone_e164="+15125559876", status="qualified")
        db.add(lead)
        await db.commit()

        result = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        assert result["lead_id"] == str(lead.id)
        assert result["lead_created"] is False
        assert await _count(db, Lead) == 1

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_idempotent(self, db):
        first = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        second = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))

        assert second["duplicate"] is True
        assert second["conversation_id"] == first["conversation_id"]
        assert await _count(db, Conversation) == 1
        assert await _count(db, Lead) == 1

    @pytest.mark.asyncio
    async def test_v2_target_uses_v2_tables(self, db):
        await handle_call_event(db, adapter, V2_TARGET, retell_event("call_started"))

        assert await _count(db, ConversationV2) == 1
        assert await _count(db, Conversation) == 0
        assert await _count(db, PhoneLeadMapping) == 0

    @pytest.mark.asyncio
    async def test_missing_call_id_rejected(self, db):
        payload = {"event": "call_started", "call": {"from_number": "+15125559876"}}
        with pytest.raises(PayloadValidationError):
            await handle_call_event(db, adapter, LEGACY_TARGET, payload)


class TestCallEnded:
    @pytest.mark.asyncio
    async def test_completes_conversation(self, db):
        started = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        result = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event(
            "call_ended",
            start_timestamp=1_700_000_000_000,
            end_timestamp=1_700_000_120_000,
            transcript="Agent: Hi, this is Relay Realty.\nUser: I saw the listing on Oak St.",
            recording_url="https://recordings.example/call_abc123.wav",
        ))

        assert result["call_status"] == "completed"
        assert result["conversation_id"] == started["conversation_id"]

        conv = (await db.execute(select(Conversation))).scalar_one()
        assert conv.duration_seconds == 120
        assert conv.ended_at is not None
        assert conv.recording_url.endswith(".wav")
        assert conv.extraction_status == "pending"

    @pytest.mark.asyncio
    async def test_materializes_transcript_messages(self, db):
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event(
            "call_ended", transcript="Agent: Hi there\nUser: Hello\nAgent: How can I help?",
        ))

        rows = (await db.execute(
            select(ConversationMessage).order_by(ConversationMessage.sequence)
        )).scalars().all()
        assert [(m.role, m.content) for m in rows] == [
            ("agent", "Hi there"), ("lead", "Hello"), ("agent", "How can I help?"),
        ]

    @pytest.mark.asyncio
    async def test_empty_transcript_skips_extraction(self, db):
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_ended"))

        conv = (await db.execute(select(Conversation))).scalar_one()
        assert conv.extraction_status == "skipped"
        assert await _count(db, ConversationMessage) == 0

    @pytest.mark.asyncio
    async def test_error_status(self, db):
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        result = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event(
            "call_ended", call_status="error", disconnection_reason="error_llm_websocket_open",
        ))

        assert result["call_status"] == "error"
        conv = (await db.execute(select(Conversation))).scalar_one()
        assert conv.error_reason == "error_llm_websocket_open"

    @pytest.mark.asyncio
    async def test_touches_lead_last_contacted(self, db):
        lead = Lead(first_name="Dana", phone_e164="+15125559876")
        db.add(lead)
        await db.commit()

        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_ended"))
        await db.refresh(lead)
        assert lead.last_contacted_at is not None

    @pytest.mark.asyncio
    async def test_unknown_call_raises(self, db):
        with pytest.raises(LookupMissError, match="call_missing"):
            await handle_call_event(
                db, adapter, LEGACY_TARGET, retell_event("call_ended", call_id="call_missing"),
            )

    @pytest.mark.asyncio
    async def test_workflow_run_when_automation_enabled(self, db):
        await set_flags(db, use_makecom_processing=True)
        started = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_ended", transcript="User: hi"))

        run = (await db.execute(select(WorkflowRun))).scalar_one()
        assert run.workflow_name == "retell_processing_legacy"
        assert run.status == "running"
        assert str(run.conversation_id) == started["conversation_id"]
        assert run.input_data["call_id"] == "call_abc123"
        assert run.input_data["pipeline_version"] == "legacy"

    @pytest.mark.asyncio
    async def test_no_workflow_run_when_automation_disabled(self, db):
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_ended"))
        assert await _count(db, WorkflowRun) == 0

    @pytest.mark.asyncio
    async def test_fetched_call_record_enriches(self, db):
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        full = {"call_id": "call_abc123", "transcript": "Agent: Full transcript", "duration_ms": 45_000}
        with patch.object(RetellAdapter, "fetch_call", new=AsyncMock(return_value=full)):
            await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_ended"))

        conv = (await db.execute(select(Conversation))).scalar_one()
        assert conv.transcript == "Agent: Full transcript"
        assert conv.duration_seconds == 45

    @pytest.mark.asyncio
    async def test_fetch_failure_falls_back_to_webhook(self, db):
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        with patch.object(RetellAdapter, "fetch_call", new=AsyncMock(side_effect=RuntimeError("timeout"))):
            result = await handle_call_event(
                db, adapter, LEGACY_TARGET, retell_event("call_ended", transcript="User: hi"),
            )
        assert result["call_status"] == "completed"


class TestAnalysisAndTranscript:
    @pytest.mark.asyncio
    async def test_call_analyzed_merges_analysis(self, db):
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event(
            "call_analyzed", call_analysis={"call_summary": "Wants a showing"},
        ))
        result = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event(
            "call_analyzed", sentiment_score=0.8, call_analysis={"user_sentiment": "Positive"},
        ))

        assert result["call_status"] == "active"
        conv = (await db.execute(select(Conversation))).scalar_one()
        assert conv.sentiment_score == 0.8
        assert conv.call_analysis == {"call_summary": "Wants a showing", "user_sentiment": "Positive"}

    @pytest.mark.asyncio
    async def test_transcript_update_overwrites(self, db):
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_started"))
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("transcript_update", transcript="Agent: Hi"))
        await handle_call_event(db, adapter, LEGACY_TARGET, retell_event(
            "transcript_update", transcript="Agent: Hi\nUser: Hello",
        ))

        conv = (await db.execute(select(Conversation))).scalar_one()
        assert conv.transcript == "Agent: Hi\nUser: Hello"
        assert conv.call_status == "active"

    @pytest.mark.asyncio
    async def test_transcript_update_unknown_call(self, db):
        with pytest.raises(LookupMissError):
            await handle_call_event(db, adapter, V2_TARGET, retell_event("transcript_update", transcript="x"))


class TestUnknownEvent:
    @pytest.mark.asyncio
    async def test_unknown_event_not_processed(self, db):
        result = await handle_call_event(db, adapter, LEGACY_TARGET, retell_event("call_transferred"))
        assert result == {"event_type": "call_transferred", "processed": False}
        assert await _count(db, Conversation) == 0
