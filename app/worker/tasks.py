"""ARQ job definitions."""

import uuid
from typing import Any
from urllib.parse import urlparse

from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.logging import configure_logging, get_logger
from app.models.failed_job import FailedJob
from app.services import credit_cache
from app.services.expiration import expire_credits as _expire_credits
from app.storage.base import close_store, get_store, init_store

log = get_logger(__name__)


async def _run_with_dlq(
    job_name: str,
    job_id: str | None,
    args: list[Any],
    kwargs: dict[str, Any],
    coro,
) -> Any:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    try:
        return await coro
    except Exception as e:
        fid = job_id or str(uuid.uuid4())
        await get_store().record_failed_job(
            FailedJob(
                job_name=job_name,
                job_id=fid,
                args=args,
                kwargs=kwargs,
                reason=str(e)[:2000],
            )
        )
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


async def expire_credits(ctx: dict[str, Any]) -> int:
    """Cron job: expire lapsed earned credits (hourly)."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    log.info("job_start", job="expire_credits")
    count = await _run_with_dlq("expire_credits", job_id, [], {}, _expire_credits())
    log.info("job_done", job="expire_credits", expired=count)
    return count


async def startup(ctx: dict) -> None:
    configure_logging(debug=get_settings().debug)
    await init_store()
    credit_cache.init_cache()


async def shutdown(ctx: dict) -> None:
    await credit_cache.close_cache()
    await close_store()


def get_redis_settings() -> RedisSettings:
    s = get_settings()
    u = urlparse(s.redis_url or "redis://localhost:6379/0")
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/") or 0) if u.path else 0,
    )
