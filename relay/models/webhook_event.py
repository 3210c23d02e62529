"""
Webhook event audit trail - every incoming webhook is recorded before processing.
Enables debugging, replay, and diagnosis of provider/pipeline disagreements.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from relay.database import Base

PROCESSING_STATUSES = ("received", "processing", "completed", "failed", "disabled", "ignored")


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    received_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    provider = Column(String(50), nullable=False, index=True)  # retell, retell_v2, cinc, cinc_v2
    event_type = Column(String(50), nullable=False)
    event_id = Column(String(100), nullable=True, index=True)  # provider call/lead id
    payload_hash = Column(String(64), nullable=False, index=True)
    raw_payload = Column(JSONB, nullable=False)
    processing_status = Column(
        String(20), nullable=False, default="received", server_default="received"
    )
    error_message = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)
