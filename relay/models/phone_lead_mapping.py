"""
Phone-to-lead mapping - denormalized cache keyed by E.164 phone.
Maintained by CRM sync; primes the voice agent with property interests and
buyer timeline before it greets a caller.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from relay.database import Base


class PhoneLeadMapping(Base):
    __tablename__ = "phone_lead_mapping"

    phone_e164: Mapped[str] = mapped_column(String(20), primary_key=True)
    phone_raw: Mapped[Optional[str]] = mapped_column(String(40))
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id")
    )
    lead_name: Mapped[Optional[str]] = mapped_column(String(200))

    # Source-system context
    property_interests: Mapped[Optional[dict]] = mapped_column(JSONB)
    cinc_data: Mapped[Optional[dict]] = mapped_column(JSONB)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    lead: Mapped[Optional["Lead"]] = relationship(lazy="joined")

    __table_args__ = (
        Index("ix_phone_lead_mapping_lead_id", "lead_id"),
    )

    def __repr__(self) -> str:
        return f"<PhoneLeadMapping {self.phone_e164[:6]}*** lead={self.lead_id}>"
