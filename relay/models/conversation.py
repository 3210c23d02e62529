"""
Conversation model - one row per call handled by the voice agent.
Lifecycle: active -> completed (or error). Rows are keyed by the provider's
call id because webhooks never know our internal id.

`conversations` backs the legacy pipeline and `conversations_v2` the v2 one.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Float, Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from relay.database import Base

CALL_STATUSES = ("active", "completed", "error")
EXTRACTION_STATUSES = ("pending", "processing", "skipped", "failed", "done")


class ConversationColumns:
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # Provider identity
    provider: Mapped[str] = mapped_column(String(30), nullable=False)  # retell
    provider_call_id: Mapped[str] = mapped_column(String(100), nullable=False)
    agent_id: Mapped[Optional[str]] = mapped_column(String(100))

    # Call lifecycle
    direction: Mapped[str] = mapped_column(String(10), default="inbound")  # inbound, outbound
    call_status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    extraction_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)

    # Content
    transcript: Mapped[Optional[str]] = mapped_column(Text)
    recording_url: Mapped[Optional[str]] = mapped_column(Text)
    sentiment_score: Mapped[Optional[float]] = mapped_column(Float)
    call_analysis: Mapped[Optional[dict]] = mapped_column(JSONB)
    call_data: Mapped[Optional[dict]] = mapped_column(JSONB)
    error_reason: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.provider_call_id} status={self.call_status}>"


class Conversation(ConversationColumns, Base):
    __tablename__ = "conversations"

    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id")
    )

    __table_args__ = (
        Index("ix_conversations_provider_call_id", "provider_call_id", unique=True),
        Index("ix_conversations_lead_id", "lead_id"),
        Index("ix_conversations_call_status", "call_status"),
        Index("ix_conversations_created_at", "created_at"),
    )


class ConversationV2(ConversationColumns, Base):
    __tablename__ = "conversations_v2"

    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads_v2.id")
    )

    __table_args__ = (
        Index("ix_conversations_v2_provider_call_id", "provider_call_id", unique=True),
        Index("ix_conversations_v2_lead_id", "lead_id"),
        Index("ix_conversations_v2_call_status", "call_status"),
    )
