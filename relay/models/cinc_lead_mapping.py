"""
CINC lead mapping - staging row for leads received on the v2 CINC endpoint.
Rows start as pending and are promoted to leads by the downstream workflow.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from relay.database import Base


class CincLeadMapping(Base):
    __tablename__ = "cinc_lead_mapping"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    cinc_lead_id: Mapped[Optional[str]] = mapped_column(String(100))
    cinc_contact_id: Mapped[Optional[str]] = mapped_column(String(100))
    phone_raw: Mapped[Optional[str]] = mapped_column(String(40))
    phone_e164: Mapped[str] = mapped_column(String(20), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    processing_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    lead_data: Mapped[Optional[dict]] = mapped_column(JSONB)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_cinc_lead_mapping_phone_e164", "phone_e164"),
        Index("ix_cinc_lead_mapping_processing_status", "processing_status"),
    )
