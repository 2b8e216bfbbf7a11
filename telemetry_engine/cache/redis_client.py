"""
Redis read-through cache for device current state.

Keys are ``current:{device_class}:{device_id}`` and hold the JSON-encoded
CurrentState with a TTL of ``CACHE_TTL_S``. The ingestion coordinator
writes the fresh state after every successful current-state replace.
Writes are compare-and-set on ``ts`` (WATCH/MULTI), so a reader filling
the cache from a row it loaded before that replace cannot overwrite the
newer entry, and out-of-order refreshes keep the latest reading. All cache
operations are best-effort: failures are logged, never raised, so the
database stays the source of truth.

CHANGELOG:
- 2026-10-17: Guard cache writes by reading ts; refresh instead of invalidate (STORY-110)
- 2026-10-14: Move cache get/set helpers here from the realtime route (STORY-106)
- 2026-10-12: Initial creation (STORY-104)

TODO:
- None
"""

import logging
from datetime import UTC, datetime

import redis.asyncio as redis
from redis.exceptions import WatchError

from telemetry_engine.config import get_settings
from telemetry_engine.models import CurrentState, DeviceClass, Reading

logger = logging.getLogger(__name__)


def cache_key(device_class: DeviceClass, device_id: str) -> str:
    """Build the Redis key for a device's current state."""
    return f"current:{device_class.value}:{device_id}"


async def get_redis() -> redis.Redis:
    """Create and return an async Redis client from application settings.

    Returns:
        redis.Redis: Async Redis client.
    """
    settings = get_settings()
    return redis.from_url(settings.REDIS_URL)


async def cache_get_current(device_class: DeviceClass, device_id: str) -> CurrentState | None:
    """Read a cached current state.

    Args:
        device_class: Class of the device.
        device_id: The device identifier to look up.

    Returns:
        CurrentState or None: Cached state, or None on miss/failure.
    """
    try:
        client = await get_redis()
        try:
            raw = await client.get(cache_key(device_class, device_id))
            if raw is not None:
                return CurrentState.model_validate_json(raw)
        finally:
            await client.aclose()
    except Exception:
        logger.warning(
            "Redis cache read failed for device %s", device_id, exc_info=True,
            extra={"device_id": device_id, "device_class": device_class.value},
        )
    return None


async def cache_set_current(state: CurrentState) -> bool:
    """Cache *state* unless an equal or newer reading is already cached.

    Args:
        state: State to cache as JSON.

    Returns:
        bool: True if the entry was written.
    """
    key = cache_key(state.device_class, state.device_id)
    extra = {"device_id": state.device_id, "device_class": state.device_class.value}
    try:
        settings = get_settings()
        client = await get_redis()
        try:
            async with client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is not None and CurrentState.model_validate_json(raw).ts >= state.ts:
                    return False
                pipe.multi()
                pipe.set(key, state.model_dump_json(), ex=settings.CACHE_TTL_S)
                await pipe.execute()
                return True
        finally:
            await client.aclose()
    except WatchError:
        # Another writer touched the key first; its entry stands.
        logger.debug("Concurrent cache write for device %s", state.device_id, extra=extra)
    except Exception:
        logger.warning(
            "Redis cache write failed for device %s", state.device_id, exc_info=True,
            extra=extra,
        )
    return False


async def refresh_device_cache(reading: Reading) -> None:
    """Cache the current state produced by an accepted *reading*.

    Used as the coordinator's current-state hook.

    Args:
        reading: Reading that was just applied to current state.
    """
    await cache_set_current(
        CurrentState(
            device_id=reading.device_id,
            device_class=reading.device_class,
            ts=reading.ts,
            metrics=reading.metrics,
            last_updated=datetime.now(UTC),
        )
    )
