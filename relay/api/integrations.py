"""
Outbound integration endpoints - Retell API proxy and SMS send.
Credentials stay server-side; the dashboard never sees them.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from relay.database import get_db
from relay.errors import RelayError
from relay.schemas.webhook_payloads import RetellProxyRequest, SmsSendRequest
from relay.services import retell_client, sms

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["integrations"])


async def _read_json(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


@router.post("/retell/proxy")
async def retell_proxy(request: Request):
    """Forward {endpoint, method, body} to Retell and pass the JSON back verbatim."""
    try:
        payload = RetellProxyRequest(**(await _read_json(request)))
    except ValidationError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    try:
        data = await retell_client.retell_request(payload.endpoint, payload.method, payload.body)
    except RelayError as e:
        logger.error("Retell API proxy error: %s", e.message)
        return JSONResponse({"error": e.message}, status_code=e.status_code)
    return JSONResponse(data)


@router.post("/sms/send")
async def send_sms(request: Request, db: AsyncSession = Depends(get_db)):
    """Send an SMS through Twilio, optionally completing a follow-up action."""
    try:
        payload = SmsSendRequest(**(await _read_json(request)))
    except ValidationError as e:
        return JSONResponse({"success": False, "error": str(e)}, status_code=400)

    try:
        return await sms.send_sms(
            db,
            payload.phone_number,
            payload.message,
            lead_id=payload.lead_id,
            action_id=payload.action_id,
        )
    except RelayError as e:
        logger.error("SMS sending error: %s", e.message)
        return JSONResponse({"success": False, "error": e.message}, status_code=e.status_code)
