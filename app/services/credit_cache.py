"""Read-through balance cache in Redis. Advisory only: every failure falls back to the ledger."""

import asyncio

import redis.asyncio as aioredis
from beanie import PydanticObjectId

from app.core.config import get_settings
from app.core.logging import get_logger
from app.services import ledger

log = get_logger(__name__)

KEY_PREFIX = "credits"

_redis: aioredis.Redis | None = None


def init_cache(client: aioredis.Redis | None = None) -> None:
    """Install the Redis client (app/worker startup). Without REDIS_URL the cache is disabled."""
    global _redis
    if client is not None:
        _redis = client
        return
    s = get_settings()
    if not s.redis_url:
        _redis = None
        return
    _redis = aioredis.from_url(
        s.redis_url,
        decode_responses=True,
        socket_timeout=s.cache_timeout_seconds,
        socket_connect_timeout=s.cache_timeout_seconds,
    )


async def close_cache() -> None:
    global _redis
    if _redis is not None:
        client, _redis = _redis, None
        await client.aclose()


def _key(user_id: PydanticObjectId) -> str:
    return f"{KEY_PREFIX}:{user_id}"


async def _call(op: str, user_id: PydanticObjectId, coro):
    try:
        return await asyncio.wait_for(coro, timeout=get_settings().cache_timeout_seconds)
    except Exception as e:
        log.warning(f"credit_cache_{op}_failed", user_id=str(user_id), error=repr(e))
        return None


async def get_cached_balance(user_id: PydanticObjectId) -> int | None:
    """Cached balance, or None on miss, garbage, or any cache error."""
    if _redis is None:
        return None
    raw = await _call("read", user_id, _redis.get(_key(user_id)))
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        log.warning("credit_cache_bad_value", user_id=str(user_id), value=str(raw)[:50])
        return None


async def store_balance(user_id: PydanticObjectId, balance: int) -> None:
    if _redis is None:
        return
    ttl = get_settings().credit_cache_ttl_seconds
    await _call("write", user_id, _redis.set(_key(user_id), str(balance), ex=ttl))


async def get_available_credits(user_id: PydanticObjectId) -> int:
    """Cache hit, else compute from the ledger and write through."""
    cached = await get_cached_balance(user_id)
    if cached is not None:
        return cached
    balance = await ledger.calculate_available_credits(user_id)
    await store_balance(user_id, balance)
    return balance


async def refresh_balance(user_id: PydanticObjectId) -> None:
    """
    Overwrite the cached balance after a ledger write.

    Runs after the write is durable, so nothing here may fail the caller. If the
    balance cannot be recomputed the key is dropped instead.
    """
    if _redis is None:
        return
    try:
        balance = await ledger.calculate_available_credits(user_id)
    except Exception as e:
        log.warning("credit_cache_refresh_failed", user_id=str(user_id), error=repr(e))
        await drop_balance(user_id)
        return
    await store_balance(user_id, balance)


async def drop_balance(user_id: PydanticObjectId) -> None:
    """Forget the cached balance; the next read recomputes it."""
    if _redis is None:
        return
    await _call("delete", user_id, _redis.delete(_key(user_id)))
