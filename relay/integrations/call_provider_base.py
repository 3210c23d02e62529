"""
Abstract call provider interface - every voice-AI provider implements this.
The call pipeline only ever talks to an adapter, so adding a provider means
writing one adapter class and registering it, never touching the pipeline.
"""
from abc import ABC, abstractmethod
from typing import Optional

# Lifecycle events the pipeline understands
CALL_STARTED = "call_started"
CALL_ENDED = "call_ended"
CALL_ANALYZED = "call_analyzed"
TRANSCRIPT_UPDATE = "transcript_update"


class CallProviderAdapter(ABC):
    """Maps one provider's webhook payloads onto the pipeline's vocabulary."""

    provider: str = ""
    lead_source: str = ""

    @abstractmethod
    def extract_event_type(self, payload: dict) -> str:
        """Return the event type, or "unknown" when the payload carries none."""
        ...

    @abstractmethod
    def extract_call(self, payload: dict) -> dict:
        """Return the call object embedded in the payload."""
        ...

    @abstractmethod
    def extract_call_id(self, payload: dict) -> Optional[str]:
        ...

    @abstractmethod
    def extract_phones(self, payload: dict) -> list[str]:
        """Candidate phone numbers in priority order (raw, not normalized)."""
        ...

    @abstractmethod
    def extract_transcript(self, payload: dict) -> Optional[str]:
        ...

    @abstractmethod
    def extract_call_details(self, call: dict) -> dict:
        """
        Normalize a call object into conversation fields.
        Returns: {
            "direction": str, "agent_id": str|None,
            "started_at": datetime|None, "ended_at": datetime|None,
            "duration_seconds": int|None, "recording_url": str|None,
            "transcript": str|None, "sentiment_score": float|None,
            "call_analysis": dict|None, "utterances": list[dict],
            "live_utterances": list[dict],
            "errored": bool, "error_reason": str|None,
        }
        Keys with no value in the payload are None (empty lists for utterances).
        """
        ...

    def extract_event_id(self, payload: dict) -> Optional[str]:
        """Identifier stored on the audit row. Defaults to the call id."""
        return self.extract_call_id(payload)

    async def fetch_call(self, call_id: str) -> Optional[dict]:
        """
        Fetch the provider's full call record, or None when unsupported.
        Called after call_ended to enrich webhook data. Errors propagate;
        the pipeline treats enrichment as best-effort.
        """
        return None
