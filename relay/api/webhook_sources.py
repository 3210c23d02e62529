"""
Source-specific webhook payload parsers for CINC lead deliveries and
Cal.com booking events.
Each function turns a raw payload into plain column values; the
ingestion service decides what to write.
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

from relay.errors import PayloadValidationError
from relay.models.lead import LEAD_STATUSES
from relay.utils.phone import normalize_phone, phone_pair

logger = logging.getLogger(__name__)

CINC_NEW_LEAD = "NEW_LEAD_WEBHOOK"
CINC_LEAD_UPDATE = "LEAD_UPDATE_WEBHOOK"
CINC_NOTE_ADDED = "NOTE_ADDED_WEBHOOK"

V2_PHONE_FIELDS = ("phone", "mobile_phone", "phone_number")

CAL_BOOKING_CREATED = "BOOKING_CREATED"
CAL_BOOKING_RESCHEDULED = "BOOKING_RESCHEDULED"
CAL_BOOKING_CANCELLED = "BOOKING_CANCELLED"


def cinc_event_id(payload: dict) -> str:
    """CINC's event id, or a synthetic one when the delivery has none."""
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    event_id = payload.get("event_id") or data.get("event_id")
    if event_id:
        return str(event_id)
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{payload.get('event_type')}-{millis}"


def _cinc_lead_data(payload: dict) -> dict:
    data = payload.get("data")
    if not isinstance(data, dict):
        raise PayloadValidationError("No lead data in payload")
    buyer = data.get("buyer")
    return buyer if isinstance(buyer, dict) else data


def _cinc_lead_id(lead_data: dict) -> str:
    cinc_lead_id = lead_data.get("lead_id") or lead_data.get("id")
    if not cinc_lead_id:
        raise PayloadValidationError("CINC Lead ID missing")
    return str(cinc_lead_id)


def _cinc_status(value) -> Optional[str]:
    if not value:
        return None
    status = str(value).strip().lower()
    return status if status in LEAD_STATUSES else "new"


def parse_cinc_lead(payload: dict) -> tuple[str, dict]:
    """Parse a new/updated lead delivery.

    Returns:
        Tuple of (cinc_lead_id, fields). Fields absent from the payload are
        left out so an update never blanks existing values.
    """
    lead_data = _cinc_lead_data(payload)
    cinc_lead_id = _cinc_lead_id(lead_data)
    phone_raw, phone_e164 = phone_pair(lead_data.get("phone1") or lead_data.get("phone"))

    fields = {
        "first_name": lead_data.get("first_name"),
        "last_name": lead_data.get("last_name"),
        "email": lead_data.get("email"),
        "phone_raw": phone_raw,
        "phone_e164": phone_e164,
        "source": lead_data.get("source_type") or "CINC",
        "status": _cinc_status(lead_data.get("pipeline_status")),
        "notes": lead_data.get("note") or lead_data.get("remarks"),
        "assigned_to": lead_data.get("assigned_agent"),
    }
    return cinc_lead_id, {k: v for k, v in fields.items() if v is not None}


def parse_cinc_note(payload: dict) -> tuple[str, Optional[str]]:
    """Parse a note delivery into (cinc_lead_id, note_text)."""
    lead_data = _cinc_lead_data(payload)
    cinc_lead_id = _cinc_lead_id(lead_data)
    note = lead_data.get("note_text") or lead_data.get("note")
    return cinc_lead_id, (note.strip() if isinstance(note, str) and note.strip() else None)


def parse_cinc_v2_lead(payload: dict) -> dict:
    """Parse a v2 delivery into cinc_lead_mapping column values.
    Raises PayloadValidationError when no phone is present."""
    lead_data = payload.get("lead") if isinstance(payload.get("lead"), dict) else payload

    phone_raw = next((lead_data[f] for f in V2_PHONE_FIELDS if lead_data.get(f)), None)
    phone_e164 = normalize_phone(str(phone_raw)) if phone_raw else None
    if not phone_e164:
        raise PayloadValidationError("No valid phone number found in CINC payload")

    cinc_lead_id = lead_data.get("id") or lead_data.get("lead_id")
    contact_id = lead_data.get("contact_id")
    return {
        "cinc_lead_id": str(cinc_lead_id) if cinc_lead_id else None,
        "cinc_contact_id": str(contact_id) if contact_id else None,
        "phone_raw": str(phone_raw),
        "phone_e164": phone_e164,
        "first_name": lead_data.get("first_name"),
        "last_name": lead_data.get("last_name"),
        "email": lead_data.get("email"),
    }


def _cal_time(value, field: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError):
        raise PayloadValidationError(f"Missing or invalid {field}.")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def cal_booking_uid(payload: dict) -> Optional[str]:
    booking = payload.get("payload")
    uid = booking.get("uid") if isinstance(booking, dict) else None
    return str(uid) if uid else None


def parse_cal_booking(payload: dict) -> tuple[str, str, dict]:
    """Parse a Cal.com delivery into (trigger, cal_booking_id, booking).

    Raises PayloadValidationError when the envelope or the uid is missing.
    """
    booking = payload.get("payload")
    trigger = payload.get("type") or payload.get("triggerEvent")
    if not trigger or not isinstance(booking, dict):
        raise PayloadValidationError("Invalid payload structure. Missing type or payload.")
    uid = cal_booking_uid(payload)
    if not uid:
        raise PayloadValidationError("Missing cal_booking_id (payload.uid).")
    return str(trigger), uid, booking


def cal_booking_slot(booking: dict) -> tuple[datetime, int]:
    """Return (scheduled_at, duration_minutes) for a booking's time window.

    Partial minutes round up; an end at or before the start is rejected.
    """
    start = _cal_time(booking.get("startTime"), "startTime")
    end = _cal_time(booking.get("endTime"), "endTime")
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        raise PayloadValidationError("Invalid duration: endTime must be after startTime.")
    return start, math.ceil(seconds / 60)


def cal_booking_lead_id(booking: dict) -> uuid.UUID:
    metadata = booking.get("metadata") if isinstance(booking.get("metadata"), dict) else {}
    try:
        return uuid.UUID(str(metadata.get("lead_id")))
    except ValueError:
        raise PayloadValidationError("Missing or invalid lead_id (must be a UUID).")
