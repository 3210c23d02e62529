"""
Simulate a Retell call lifecycle or a CINC lead against a running server.

Usage:
    python scripts/simulate_call.py
    python scripts/simulate_call.py --pipeline v2 --phone "+15125559999"
    python scripts/simulate_call.py --source cinc --secret "$CINC_WEBHOOK_SECRET"
"""
import argparse
import asyncio
import hashlib
import hmac
import json
import logging
import time
import uuid

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"


def _retell_url(pipeline: str) -> str:
    suffix = "" if pipeline == "legacy" else f"/{pipeline}"
    return f"{BASE_URL}/api/v1/webhook/retell{suffix}"


async def simulate_call(phone: str, pipeline: str):
    """Send call_started, transcript_update, call_ended and call_analyzed for one call."""
    call_id = f"call_sim_{uuid.uuid4().hex[:12]}"
    started = int(time.time() * 1000)
    transcript = (
        "Agent: Hi, this is Ava with Relay Realty. How can I help?\n"
        "User: I saw a listing on Maple Street and want to schedule a showing."
    )
    base_call = {
        "call_id": call_id,
        "agent_id": "agent_sim",
        "from_number": phone,
        "to_number": "+15125550100",
        "direction": "inbound",
        "start_timestamp": started,
    }
    events = [
        {"event": "call_started", "call": base_call},
        {"event": "transcript_update", "call": {**base_call, "transcript": transcript}},
        {"event": "call_ended", "call": {
            **base_call,
            "end_timestamp": started + 95_000,
            "duration_ms": 95_000,
            "transcript": transcript,
            "recording_url": "https://example.com/recordings/sim.wav",
        }},
        {"event": "call_analyzed", "call": {
            **base_call,
            "sentiment_score": 0.8,
            "call_analysis": {"call_summary": "Caller wants a showing on Maple Street."},
        }},
    ]
    async with httpx.AsyncClient(timeout=30) as client:
        for payload in events:
            resp = await client.post(_retell_url(pipeline), json=payload)
            logger.info("%s -> %s %s", payload["event"], resp.status_code, resp.json())


async def simulate_cinc_lead(phone: str, name: str, secret: str):
    """Send a signed NEW_LEAD_WEBHOOK."""
    first, _, last = name.partition(" ")
    payload = {
        "event_type": "NEW_LEAD_WEBHOOK",
        "event_id": f"evt_{uuid.uuid4().hex[:10]}",
        "data": {"buyer": {
            "lead_id": f"cinc_{uuid.uuid4().hex[:8]}",
            "first_name": first,
            "last_name": last,
            "email": f"{first.lower()}@example.com",
            "phone1": phone,
            "pipeline_status": "New",
        }},
    }
    body = json.dumps(payload).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            f"{BASE_URL}/api/v1/webhook/cinc",
            content=body,
            headers={"Content-Type": "application/json", "X-CINC-Signature": signature},
        )
        logger.info("CINC response: %s %s", resp.status_code, resp.json())


async def main():
    parser = argparse.ArgumentParser(description="Simulate inbound webhooks")
    parser.add_argument("--source", default="retell", choices=["retell", "cinc"])
    parser.add_argument("--pipeline", default="legacy", choices=["legacy", "v2"])
    parser.add_argument("--phone", default="+15125559876")
    parser.add_argument("--name", default="John Smith")
    parser.add_argument("--secret", default="")
    args = parser.parse_args()

    if args.source == "retell":
        await simulate_call(args.phone, args.pipeline)
    else:
        await simulate_cinc_lead(args.phone, args.name, args.secret)


if __name__ == "__main__":
    asyncio.run(main())
