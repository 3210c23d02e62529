"""
Lead model - a contact/prospect from any source (CINC, inbound call, dashboard).
Lifecycle: new -> contacted -> qualified -> proposal -> converted, or lost.

`leads` backs the legacy pipeline and `leads_v2` the v2 pipeline. Both share
one column layout; which table a webhook writes to is a pipeline setting.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from relay.database import Base

LEAD_STATUSES = ("new", "contacted", "qualified", "proposal", "converted", "lost")


class LeadColumns:
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # Contact info
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone_raw: Mapped[Optional[str]] = mapped_column(String(40))
    phone_e164: Mapped[Optional[str]] = mapped_column(String(20))

    # Source and lifecycle
    source: Mapped[Optional[str]] = mapped_column(
        String(100)
    )  # CINC, retell_call, dashboard, ...
    status: Mapped[str] = mapped_column(String(20), default="new", nullable=False)
    cinc_lead_id: Mapped[Optional[str]] = mapped_column(String(100))
    assigned_to: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    profile_data: Mapped[Optional[dict]] = mapped_column(JSONB)

    # Timestamps
    last_contacted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    next_follow_up_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or "Unknown"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone_raw": self.phone_raw,
            "phone_e164": self.phone_e164,
            "status": self.status,
            "source": self.source,
            "cinc_lead_id": self.cinc_lead_id,
            "assigned_to": self.assigned_to,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_contacted_at": self.last_contacted_at.isoformat() if self.last_contacted_at else None,
        }

    def __repr__(self) -> str:
        masked = self.phone_e164[:6] + "***" if self.phone_e164 else "unknown"
        return f"<{type(self).__name__} {masked} status={self.status}>"


class Lead(LeadColumns, Base):
    __tablename__ = "leads"

    __table_args__ = (
        Index("ix_leads_phone_e164", "phone_e164"),
        Index("ix_leads_cinc_lead_id", "cinc_lead_id", unique=True),
        Index("ix_leads_status", "status"),
        Index("ix_leads_created_at", "created_at"),
    )


class LeadV2(LeadColumns, Base):
    __tablename__ = "leads_v2"

    __table_args__ = (
        Index("ix_leads_v2_phone_e164", "phone_e164"),
        Index("ix_leads_v2_status", "status"),
    )
