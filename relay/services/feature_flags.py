"""
Feature gate - named on/off switches stored in system_config.

Reads go through Redis with a short TTL so a burst of webhooks does not
cost one database round trip each. A missing row means disabled, and that
answer is cached too. Redis is never required: any cache error falls back
to the database. Database errors propagate so the webhook answers 500 and
the provider retries.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from relay.utils.cache import get_redis

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "relay:feature_flag"

# Known switches. Rows are seeded by the initial migration.
RETELL_PROCESSING = "retell_processing"
RETELL_PROCESSING_V2 = "retell_processing_v2"
CINC_INGESTION = "cinc_ingestion"
CINC_INGESTION_V2 = "cinc_ingestion_v2"
CAL_BOOKING_INGESTION = "cal_booking_ingestion"
USE_MAKECOM_PROCESSING = "use_makecom_processing"


def _cache_key(feature: str) -> str:
    return f"{CACHE_KEY_PREFIX}:{feature}"


async def is_feature_enabled(feature: str, db: Optional[AsyncSession] = None) -> bool:
    """
    Return True when the feature's row exists and is enabled.

    Pass the request's session as `db` to avoid opening a second connection.
    """
    cache_key = _cache_key(feature)
    try:
        redis = await get_redis()
        cached = await redis.get(cache_key)
        if cached is not None:
            return cached == "1"
    except Exception as e:
        logger.warning(
            "Feature flag cache read failed for %s: %s", feature, str(e),
            extra={"feature": feature},
        )

    enabled = await _load_from_db(feature, db)

    try:
        from relay.config import get_settings
        redis = await get_redis()
        await redis.set(
            cache_key, "1" if enabled else "0",
            ex=get_settings().feature_flag_cache_ttl_seconds,
        )
    except Exception as e:
        logger.warning(
            "Failed to cache feature flag %s: %s", feature, str(e),
            extra={"feature": feature},
        )

    return enabled


async def invalidate_feature_flag(feature: str) -> None:
    """Drop the cached value. Call after the flag row changes."""
    try:
        redis = await get_redis()
        await redis.delete(_cache_key(feature))
        logger.info("Feature flag cache invalidated for %s", feature)
    except Exception as e:
        logger.warning("Failed to invalidate feature flag %s: %s", feature, str(e))


async def _load_from_db(feature: str, db: Optional[AsyncSession]) -> bool:
    from relay.models.feature_flag import SystemConfig

    query = select(SystemConfig.enabled).where(SystemConfig.feature == feature)
    if db is not None:
        result = await db.execute(query)
        enabled = result.scalar_one_or_none()
    else:
        from relay.database import async_session_factory
        async with async_session_factory() as session:
            result = await session.execute(query)
            enabled = result.scalar_one_or_none()

    if enabled is None:
        logger.debug("Feature flag %s has no row, treating as disabled", feature)
        return False
    return bool(enabled)
