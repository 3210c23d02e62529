"""
Webhook endpoints - receive call events from Retell, leads from CINC and
bookings from Cal.com.

Every delivery goes through the same steps:
1. Signature validation (CINC legacy only)
2. Audit trail (webhook_events), committed on its own
3. Feature gate (one key per endpoint)
4. Dispatch by event type and domain processing
5. Audit status update

Providers retry on non-2xx, so unknown event types are acknowledged with
200 and processed=false rather than rejected.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from relay.api.webhook_sources import cal_booking_uid, cinc_event_id
from relay.database import get_db
from relay.errors import LookupMissError, RelayError
from relay.integrations.providers import get_adapter
from relay.models.webhook_event import WebhookEvent
from relay.services import feature_flags
from relay.services.appointments import handle_cal_event
from relay.services.call_pipeline import handle_call_event
from relay.services.cinc_ingest import handle_cinc_event, ingest_cinc_v2_lead
from relay.services.pipeline_targets import LEGACY_TARGET, V2_TARGET, PipelineTarget
from relay.utils.logging import get_correlation_id
from relay.utils.webhook_signatures import (
    CINC_SIGNATURE_HEADER,
    compute_payload_hash,
    validate_cinc_signature,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhook", tags=["webhooks"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        f"authorization, x-client-info, apikey, content-type, {CINC_SIGNATURE_HEADER.lower()}"
    ),
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _respond(content: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers=CORS_HEADERS)


def _error_response(message: str, status_code: int = 500) -> JSONResponse:
    return _respond(
        {"success": False, "error": message, "timestamp": _now_iso()},
        status_code=status_code,
    )


async def _record_webhook_event(
    db: AsyncSession,
    provider: str,
    event_type: str,
    raw_payload: dict,
    payload_hash: str,
    event_id: Optional[str] = None,
) -> Optional[uuid.UUID]:
    """
    Record a webhook event in the audit trail before processing.
    Committed on its own so later failures never lose the raw delivery.
    Returns None when the audit write itself fails; processing continues.
    """
    try:
        event = WebhookEvent(
            provider=provider,
            event_type=str(event_type or "unknown")[:50],
            event_id=str(event_id)[:100] if event_id else None,
            payload_hash=payload_hash,
            raw_payload=raw_payload,
            processing_status="received",
            correlation_id=get_correlation_id(),
        )
        db.add(event)
        await db.commit()
        return event.id
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to record %s webhook event: %s", provider, str(e),
            extra={"provider": provider, "event_type": event_type},
        )
        return None


async def _complete_webhook_event(
    db: AsyncSession,
    event_id: Optional[uuid.UUID],
    status: str = "completed",
    error_message: Optional[str] = None,
) -> None:
    """Update webhook event status after processing."""
    if event_id is None:
        return
    try:
        await db.execute(
            update(WebhookEvent)
            .where(WebhookEvent.id == event_id)
            .values(
                processing_status=status,
                error_message=error_message,
                processed_at=datetime.now(timezone.utc),
            )
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error("Failed to update webhook event %s: %s", event_id, str(e))


async def _ingest(
    db: AsyncSession,
    body: bytes,
    provider: str,
    feature: str,
    describe: Callable[[dict], tuple[str, Optional[str]]],
    process: Callable[[dict], Awaitable[dict]],
    lookup_miss_status: int = 500,
) -> JSONResponse:
    """Audit, gate, and process one delivery.

    A LookupMissError answers `lookup_miss_status`; call updates for an
    unknown call id default to 500 so the provider retries.
    """
    payload_hash = compute_payload_hash(body)
    text = body.decode("utf-8", errors="replace")

    if not text.strip():
        event_id = await _record_webhook_event(db, provider, "empty", {"raw_body": ""}, payload_hash)
        await _complete_webhook_event(db, event_id, "ignored")
        # Providers send empty bodies as endpoint health checks
        return _respond({"success": True, "message": "Empty body received, likely a health check"})

    payload = None
    parse_error = None
    try:
        payload = json.loads(text)
        if not isinstance(payload, dict):
            parse_error = "JSON body must be an object"
    except ValueError as e:
        parse_error = f"Invalid JSON: {e}"

    if parse_error:
        event_id = await _record_webhook_event(
            db, provider, "invalid", {"raw_body": text}, payload_hash,
        )
        await _complete_webhook_event(db, event_id, "failed", parse_error)
        logger.warning("Unparseable %s webhook body", provider, extra={"provider": provider})
        return _error_response(parse_error, 500)

    event_type, provider_event_id = describe(payload)
    event_id = await _record_webhook_event(
        db, provider, event_type, payload, payload_hash, provider_event_id,
    )

    try:
        enabled = await feature_flags.is_feature_enabled(feature, db)
    except Exception as e:
        await db.rollback()
        logger.error("Feature gate %s unavailable: %s", feature, str(e), extra={"feature": feature})
        await _complete_webhook_event(db, event_id, "failed", f"Feature gate unavailable: {e}")
        return _error_response("Feature gate unavailable", 500)

    if not enabled:
        logger.info(
            "%s webhook ignored, %s is disabled", provider, feature,
            extra={"provider": provider, "feature": feature},
        )
        await _complete_webhook_event(db, event_id, "disabled")
        return _respond({
            "success": True,
            "status": "disabled",
            "message": f"{feature} is currently disabled",
        })

    try:
        result = await process(payload)
    except RelayError as e:
        await db.rollback()
        status_code = lookup_miss_status if isinstance(e, LookupMissError) else e.status_code
        logger.warning(
            "%s webhook %s failed: %s", provider, event_type, e.message,
            extra={"provider": provider, "event_type": event_type, "error_code": type(e).__name__},
        )
        await _complete_webhook_event(db, event_id, "failed", e.message)
        return _error_response(e.message, status_code)
    except Exception as e:
        await db.rollback()
        logger.error(
            "%s webhook %s error: %s", provider, event_type, str(e), exc_info=True,
            extra={"provider": provider, "event_type": event_type},
        )
        await _complete_webhook_event(db, event_id, "failed", str(e))
        return _error_response(str(e) or "Internal processing error", 500)

    status = "completed" if result.get("processed", True) else "ignored"
    await _complete_webhook_event(db, event_id, status)
    return _respond({"success": True, **result})


# === Retell ===

def _retell_describe(payload: dict) -> tuple[str, Optional[str]]:
    adapter = get_adapter("retell")
    return adapter.extract_event_type(payload), adapter.extract_event_id(payload)


async def _retell_webhook(request: Request, db: AsyncSession, target: PipelineTarget, feature: str):
    body = await request.body()
    adapter = get_adapter("retell")
    provider = "retell" if target.version == "legacy" else f"retell_{target.version}"

    async def process(payload: dict) -> dict:
        return await handle_call_event(db, adapter, target, payload)

    return await _ingest(db, body, provider, feature, _retell_describe, process)


@router.post("/retell")
async def retell_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Retell call events, legacy pipeline (leads / conversations)."""
    return await _retell_webhook(request, db, LEGACY_TARGET, feature_flags.RETELL_PROCESSING)


@router.post("/retell/v2")
async def retell_webhook_v2(request: Request, db: AsyncSession = Depends(get_db)):
    """Retell call events, v2 pipeline (leads_v2 / conversations_v2)."""
    return await _retell_webhook(request, db, V2_TARGET, feature_flags.RETELL_PROCESSING_V2)


@router.get("/retell")
async def retell_webhook_status():
    return _respond({
        "status": "Retell webhook endpoint is active",
        "pipeline": LEGACY_TARGET.version,
        "method": "GET",
        "timestamp": _now_iso(),
    })


@router.get("/retell/v2")
async def retell_webhook_v2_status():
    return _respond({
        "status": "Retell webhook v2 endpoint is active",
        "pipeline": V2_TARGET.version,
        "method": "GET",
        "timestamp": _now_iso(),
    })


# === CINC ===

def _cinc_describe(payload: dict) -> tuple[str, Optional[str]]:
    return payload.get("event_type") or "unknown", cinc_event_id(payload)


def _cinc_v2_describe(payload: dict) -> tuple[str, Optional[str]]:
    lead = payload.get("lead") if isinstance(payload.get("lead"), dict) else payload
    lead_id = lead.get("id") or lead.get("lead_id")
    return payload.get("event_type") or "lead", str(lead_id) if lead_id else None


@router.post("/cinc")
async def cinc_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """CINC lead events, upserted into leads. Requires X-CINC-Signature."""
    body = await request.body()

    try:
        is_valid = validate_cinc_signature(request.headers, body)
    except RelayError as e:
        return _error_response(e.message, e.status_code)
    if not is_valid:
        client_ip = request.client.host if request.client else "unknown"
        logger.warning("Invalid CINC webhook signature from %s", client_ip, extra={"provider": "cinc"})
        return _error_response("Invalid signature", 401)

    async def process(payload: dict) -> dict:
        return await handle_cinc_event(db, payload)

    return await _ingest(db, body, "cinc", feature_flags.CINC_INGESTION, _cinc_describe, process)


@router.post("/cinc/v2")
async def cinc_webhook_v2(request: Request, db: AsyncSession = Depends(get_db)):
    """CINC leads staged in cinc_lead_mapping for workflow processing."""
    body = await request.body()

    async def process(payload: dict) -> dict:
        return await ingest_cinc_v2_lead(db, payload)

    return await _ingest(db, body, "cinc_v2", feature_flags.CINC_INGESTION_V2, _cinc_v2_describe, process)


# === Cal.com ===

def _cal_describe(payload: dict) -> tuple[str, Optional[str]]:
    return payload.get("type") or payload.get("triggerEvent") or "unknown", cal_booking_uid(payload)


@router.post("/cal")
async def cal_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Cal.com booking lifecycle, mirrored into appointments."""
    body = await request.body()

    async def process(payload: dict) -> dict:
        return await handle_cal_event(db, payload)

    return await _ingest(
        db, body, "cal", feature_flags.CAL_BOOKING_INGESTION, _cal_describe, process,
        lookup_miss_status=404,
    )


@router.options("/{path:path}")
async def webhook_preflight(path: str):
    """CORS pre-flight acknowledgment. No body processing."""
    return PlainTextResponse("ok", headers=CORS_HEADERS)
