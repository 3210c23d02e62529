"""
Conversation extraction - placeholder row for downstream AI extraction of a
finished call. The extractor itself runs outside this service; we only open
the record so it has something to pick up.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from relay.database import Base


class ConversationExtraction(Base):
    __tablename__ = "conversation_extractions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # No FK: rows may point at conversations or conversations_v2
    conversation_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    pipeline_version: Mapped[str] = mapped_column(String(10), default="legacy", nullable=False)
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    extraction_version: Mapped[str] = mapped_column(String(20), default="legacy", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    extracted_data: Mapped[Optional[dict]] = mapped_column(JSONB)
    summary: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_conversation_extractions_conversation_id", "conversation_id", unique=True),
        Index("ix_conversation_extractions_status", "status"),
    )
