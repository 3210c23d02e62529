"""
Stale call sweeper - closes conversations stuck in "active".
A call_ended webhook can be lost (provider outage, failed delivery); without
this the dashboard would show the call as live forever.

Runs every 5 minutes by default. Conversations in both pipelines that have
been active longer than the timeout are marked completed with extraction
pending so the downstream extractor still picks them up.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from relay.services.pipeline_targets import TARGETS

logger = logging.getLogger(__name__)


async def run_stale_call_sweeper():
    """Main sweeper loop. Runs until cancelled."""
    from relay.config import get_settings
    settings = get_settings()
    logger.info(
        "Stale call sweeper started (timeout=%dm interval=%ds)",
        settings.stale_call_timeout_minutes, settings.stale_call_sweep_interval_seconds,
    )

    while True:
        try:
            from relay.database import async_session_factory
            async with async_session_factory() as db:
                swept = await _sweep_stale_calls(db, settings.stale_call_timeout_minutes)
            if swept > 0:
                logger.info("Stale call sweeper closed %d conversations", swept)
        except Exception as e:
            logger.error("Stale call sweeper error: %s", str(e), exc_info=True)

        await asyncio.sleep(settings.stale_call_sweep_interval_seconds)


async def _sweep_stale_calls(db: AsyncSession, timeout_minutes: int = 30) -> int:
    """Close stale active conversations in every pipeline. Returns count closed."""
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=timeout_minutes)
    total = 0

    for target in TARGETS.values():
        model = target.conversation_model
        result = await db.execute(
            select(model.id, model.provider_call_id).where(
                model.call_status == "active",
                model.created_at < cutoff,
            ).limit(200)
        )
        stale = result.all()
        if not stale:
            continue

        await db.execute(
            update(model)
            .where(model.id.in_([row.id for row in stale]))
            .values(call_status="completed", ended_at=now, extraction_status="pending")
        )
        await db.commit()
        for row in stale:
            logger.info(
                "Closed stale conversation %s (call_id=%s)", row.id, row.provider_call_id,
                extra={"conversation_id": str(row.id), "call_id": row.provider_call_id, "pipeline": target.version},
            )
        total += len(stale)

    return total
