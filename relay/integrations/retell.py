"""
Retell voice-AI integration - webhook payload adapter.

Retell has shipped three webhook shapes over time and all of them still
arrive in production:
- {"event": "call_ended", "call": {...}}       current format
- {"event_type": "call_ended", "data": {...}}  alternative format
- {"type": "call_ended", "call_id": ...}        legacy flat format
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from relay.integrations.call_provider_base import CallProviderAdapter

logger = logging.getLogger(__name__)

PHONE_FIELDS = ("from_number", "to_number", "caller_number", "phone_number")


def _parse_timestamp(value) -> Optional[datetime]:
    """Epoch milliseconds or ISO-8601 string -> aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable Retell timestamp: %s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_float(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _utterances(transcript_object) -> list[dict]:
    if not isinstance(transcript_object, list):
        return []
    utterances = []
    for item in transcript_object:
        if not isinstance(item, dict):
            continue
        content = (item.get("content") or item.get("text") or "").strip()
        if not content:
            continue
        words = item.get("words") or []
        utterances.append({
            "role": "agent" if (item.get("role") or item.get("speaker")) == "agent" else "lead",
            "content": content,
            "start_seconds": _as_float(words[0].get("start")) if words else None,
            "end_seconds": _as_float(words[-1].get("end")) if words else None,
        })
    return utterances


class RetellAdapter(CallProviderAdapter):
    """Retell webhook adapter."""

    provider = "retell"
    lead_source = "retell_call"

    def extract_event_type(self, payload: dict) -> str:
        if payload.get("event") and isinstance(payload.get("call"), dict):
            return payload["event"]
        if payload.get("event_type"):
            return payload["event_type"]
        return payload.get("type") or payload.get("event") or "unknown"

    def extract_call(self, payload: dict) -> dict:
        if isinstance(payload.get("call"), dict):
            return payload["call"]
        if payload.get("event_type") and isinstance(payload.get("data"), dict):
            return payload["data"]
        return payload

    def extract_call_id(self, payload: dict) -> Optional[str]:
        call = self.extract_call(payload)
        call_id = call.get("call_id") or payload.get("call_id")
        return str(call_id) if call_id else None

    def extract_phones(self, payload: dict) -> list[str]:
        call = self.extract_call(payload)
        return [call[field] for field in PHONE_FIELDS if call.get(field)]

    def extract_transcript(self, payload: dict) -> Optional[str]:
        return self.extract_call(payload).get("transcript") or None

    def extract_event_id(self, payload: dict) -> Optional[str]:
        return self.extract_call_id(payload) or payload.get("event") or None

    def extract_call_details(self, call: dict) -> dict:
        started_at = _parse_timestamp(call.get("start_timestamp") or call.get("started_at"))
        ended_at = _parse_timestamp(call.get("end_timestamp") or call.get("ended_at"))

        duration_seconds = None
        if call.get("duration_ms") is not None:
            duration_ms = _as_float(call["duration_ms"])
            if duration_ms is not None:
                duration_seconds = int(round(duration_ms / 1000))
        elif started_at and ended_at:
            duration_seconds = int(round((ended_at - started_at).total_seconds()))

        analysis = call.get("call_analysis")
        errored = call.get("call_status") == "error"

        return {
            "direction": call.get("direction") or "inbound",
            "agent_id": call.get("agent_id"),
            "started_at": started_at,
            "ended_at": ended_at,
            "duration_seconds": duration_seconds,
            "recording_url": call.get("recording_url"),
            "transcript": call.get("transcript") or None,
            "sentiment_score": _as_float(call.get("sentiment_score")),
            "call_analysis": analysis if isinstance(analysis, dict) else None,
            "utterances": _utterances(call.get("transcript_object")),
            "live_utterances": _utterances(call.get("utterances")),
            "errored": errored,
            "error_reason": call.get("disconnection_reason") if errored else None,
        }

    async def fetch_call(self, call_id: str) -> Optional[dict]:
        from relay.config import get_settings
        settings = get_settings()
        if not settings.retell_api_key or not settings.retell_fetch_call_details:
            return None

        from relay.services.retell_client import get_call
        return await get_call(call_id)

