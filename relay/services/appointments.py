"""
Cal.com booking ingestion.

One appointment row per Cal.com booking uid. Created bookings insert it,
reschedules move it, cancellations mark it canceled. Rows are never deleted.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.api.webhook_sources import (
    CAL_BOOKING_CANCELLED,
    CAL_BOOKING_CREATED,
    CAL_BOOKING_RESCHEDULED,
    cal_booking_lead_id,
    cal_booking_slot,
    parse_cal_booking,
)
from relay.errors import ConflictError, LookupMissError, PayloadValidationError
from relay.models.appointment import Appointment
from relay.models.lead import Lead

logger = logging.getLogger(__name__)


async def _appointment_by_booking(db: AsyncSession, cal_booking_id: str):
    result = await db.execute(
        select(Appointment).where(Appointment.cal_booking_id == cal_booking_id).limit(1)
    )
    return result.scalar_one_or_none()


async def _require_appointment(db: AsyncSession, cal_booking_id: str) -> Appointment:
    appointment = await _appointment_by_booking(db, cal_booking_id)
    if appointment is None:
        raise LookupMissError(f"Appointment with cal_booking_id {cal_booking_id} not found.")
    return appointment


async def create_appointment(db: AsyncSession, cal_booking_id: str, booking: dict) -> dict:
    lead_id = cal_booking_lead_id(booking)
    scheduled_at, duration = cal_booking_slot(booking)

    if await db.get(Lead, lead_id) is None:
        raise PayloadValidationError(f"Invalid lead_id: {lead_id} does not exist.")
    if await _appointment_by_booking(db, cal_booking_id) is not None:
        raise ConflictError(f"Booking with cal_booking_id {cal_booking_id} already exists.")

    appointment = Appointment(
        lead_id=lead_id,
        scheduled_at=scheduled_at,
        duration_minutes=duration,
        appointment_type="phone_call",
        status="scheduled",
        cal_booking_id=cal_booking_id,
        notes=f"Booked via Cal.com. Title: {booking.get('title') or 'N/A'}",
    )
    db.add(appointment)
    await db.commit()
    logger.info(
        "Appointment %s booked for %s", cal_booking_id, scheduled_at.isoformat(),
        extra={"lead_id": str(lead_id), "provider": "cal"},
    )
    return {"appointment": appointment.to_dict()}


async def reschedule_appointment(db: AsyncSession, cal_booking_id: str, booking: dict) -> dict:
    scheduled_at, duration = cal_booking_slot(booking)
    appointment = await _require_appointment(db, cal_booking_id)

    appointment.scheduled_at = scheduled_at
    appointment.duration_minutes = duration
    appointment.status = "scheduled"
    await db.commit()
    logger.info(
        "Appointment %s moved to %s", cal_booking_id, scheduled_at.isoformat(),
        extra={"lead_id": str(appointment.lead_id), "provider": "cal"},
    )
    return {"appointment": appointment.to_dict()}


async def cancel_appointment(db: AsyncSession, cal_booking_id: str, booking: dict) -> dict:
    appointment = await _require_appointment(db, cal_booking_id)

    appointment.status = "canceled"
    await db.commit()
    logger.info(
        "Appointment %s canceled", cal_booking_id,
        extra={"lead_id": str(appointment.lead_id), "provider": "cal"},
    )
    return {"appointment": appointment.to_dict()}


_HANDLERS = {
    CAL_BOOKING_CREATED: create_appointment,
    CAL_BOOKING_RESCHEDULED: reschedule_appointment,
    CAL_BOOKING_CANCELLED: cancel_appointment,
}


async def handle_cal_event(db: AsyncSession, payload: dict) -> dict:
    """
    Apply one Cal.com booking webhook.

    Raises:
        PayloadValidationError: bad envelope, uid, lead id or time window.
        ConflictError: BOOKING_CREATED for a uid that already has a row.
        LookupMissError: reschedule or cancel for an unknown uid.
    """
    trigger, cal_booking_id, booking = parse_cal_booking(payload)
    handler = _HANDLERS.get(trigger)
    if handler is None:
        logger.info("Unhandled Cal.com event type: %s", trigger, extra={"provider": "cal", "event_type": trigger})
        return {"event_type": trigger, "processed": False}

    summary = await handler(db, cal_booking_id, booking)
    summary.update({"event_type": trigger, "processed": True})
    return summary
