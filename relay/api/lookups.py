"""
Lookup endpoints - lead context for the voice agent, lead by phone for
the dashboard.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from relay.database import get_db
from relay.errors import LookupMissError, RelayError
from relay.schemas.webhook_payloads import PhoneLookupRequest
from relay.services.lead_lookup import lookup_lead_by_phone, lookup_phone_context

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["lookups"])


@router.post("/phone-lookup")
async def phone_lookup(request: Request, db: AsyncSession = Depends(get_db)):
    """Voice agent pre-call lookup: lead plus greeting context."""
    try:
        payload = PhoneLookupRequest(**(await request.json()))
    except (ValueError, TypeError, ValidationError):
        return JSONResponse({"success": False, "message": "Invalid JSON body"}, status_code=400)

    try:
        lead_context = await lookup_phone_context(db, payload.phone_number)
    except LookupMissError as e:
        return JSONResponse(
            {"success": False, "message": e.message, "phone_number": payload.phone_number},
            status_code=404,
        )
    except RelayError as e:
        return JSONResponse({"success": False, "message": e.message}, status_code=e.status_code)

    return {"success": True, "message": "Lead context found", "lead_context": lead_context}


@router.get("/leads/lookup")
async def lead_lookup(phone: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    """Dashboard lookup of a lead by phone (any common format)."""
    try:
        return await lookup_lead_by_phone(db, phone)
    except LookupMissError as e:
        return JSONResponse({"message": e.message}, status_code=404)
    except RelayError as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)
