"""
SMS service - outbound texts to leads through Twilio.

Used by the dashboard's follow-up actions. When the send references an
action, the action is marked completed after Twilio accepts the message.
"""
import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from relay.errors import ConfigurationError, DownstreamError, PayloadValidationError
from relay.utils.phone import mask_phone

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10

# Twilio client timeout
TWILIO_CLIENT_TIMEOUT = 10

_NON_DIAL_CHARS = re.compile(r"[^\d+]")


def _get_twilio_client():
    """Get a Twilio REST client with configured timeout."""
    from twilio.rest import Client as TwilioClient
    from twilio.http.http_client import TwilioHttpClient
    from relay.config import get_settings
    settings = get_settings()
    http_client = TwilioHttpClient(timeout=TWILIO_CLIENT_TIMEOUT)
    return TwilioClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        http_client=http_client,
    )


async def _run_sync(func, *args, **kwargs):
    """Run a synchronous function in the thread pool to avoid blocking the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def clean_phone(phone: str) -> str:
    """Strip everything except digits and '+'."""
    return _NON_DIAL_CHARS.sub("", phone or "")


async def send_sms(
    db: AsyncSession,
    phone_number: Optional[str],
    message: Optional[str],
    lead_id: Optional[str] = None,
    action_id: Optional[str] = None,
) -> dict:
    """
    Send one SMS and optionally complete the linked action.
    Returns: {"success": True, "message": str, "twilioSid": str, "to": str}
    """
    if not phone_number or not isinstance(phone_number, str):
        raise PayloadValidationError("Valid phone number is required")
    if not message or not isinstance(message, str) or not message.strip():
        raise PayloadValidationError("Message content is required")

    to = clean_phone(phone_number)
    if len(to.lstrip("+")) < MIN_PHONE_DIGITS:
        raise PayloadValidationError("Phone number must be at least 10 digits")

    from relay.config import get_settings
    settings = get_settings()
    if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number):
        raise ConfigurationError(
            "Twilio credentials not configured. Set TWILIO_ACCOUNT_SID, "
            "TWILIO_AUTH_TOKEN, and TWILIO_PHONE_NUMBER"
        )

    logger.info(
        "Sending SMS to %s (lead=%s action=%s)", mask_phone(to), lead_id, action_id,
        extra={"lead_id": lead_id},
    )

    client = _get_twilio_client()
    try:
        sent = await _run_sync(
            client.messages.create,
            to=to,
            from_=settings.twilio_phone_number,
            body=message,
        )
    except Exception as e:
        code = getattr(e, "status", None)
        logger.error("Twilio send failed for %s: %s", mask_phone(to), str(e))
        raise DownstreamError("Twilio", code, getattr(e, "msg", None) or str(e))

    logger.info("SMS sent to %s sid=%s", mask_phone(to), sent.sid)

    if action_id:
        await _complete_action(db, action_id, sent.sid)

    return {
        "success": True,
        "message": "SMS sent successfully",
        "twilioSid": sent.sid,
        "to": to,
    }


async def _complete_action(db: AsyncSession, action_id: str, message_sid: str) -> None:
    """Mark the action completed. Failures are logged, never raised."""
    from relay.models.action import Action

    try:
        result = await db.execute(
            update(Action)
            .where(Action.id == uuid.UUID(str(action_id)))
            .values(
                status="completed",
                completed_at=datetime.now(timezone.utc),
                notes=f"SMS sent successfully. Twilio SID: {message_sid}",
            )
        )
        await db.commit()
        if result.rowcount == 0:
            logger.warning("Action %s not found, SMS sent anyway", action_id)
        else:
            logger.info("Action %s marked as completed", action_id)
    except Exception as e:
        await db.rollback()
        logger.error("Error updating action %s: %s", action_id, str(e))
