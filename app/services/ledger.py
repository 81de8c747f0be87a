"""Balance aggregates over the credit ledger, and the per-user write lock."""

import asyncio
import secrets
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator
from zoneinfo import ZoneInfo

from beanie import PydanticObjectId

from app.core.config import get_settings
from app.core.exceptions import LedgerBusyError
from app.core.logging import get_logger
from app.storage.base import get_store

log = get_logger(__name__)


def _ledger_tz():
    name = get_settings().ledger_timezone
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def start_of_local_day(now: datetime | None = None) -> datetime:
    """Midnight of the current day in LEDGER_TIMEZONE, as naive UTC (how timestamps are stored)."""
    now = now or datetime.utcnow()
    local_now = now.replace(tzinfo=timezone.utc).astimezone(_ledger_tz())
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(ts: datetime) -> str:
    """YYYY-MM-DD of a stored (naive UTC) timestamp in LEDGER_TIMEZONE."""
    return ts.replace(tzinfo=timezone.utc).astimezone(_ledger_tz()).strftime("%Y-%m-%d")


async def sum_earned(user_id: PydanticObjectId, since: datetime | None = None) -> int:
    """Everything ever earned (optionally since a timestamp), expired or not."""
    return await get_store().sum_amount(user_id, "earned", since=since)


async def sum_spent(user_id: PydanticObjectId) -> int:
    """Absolute minutes spent on coding, all time."""
    return abs(await get_store().sum_amount(user_id, "spent"))


async def sum_emergency(user_id: PydanticObjectId, since: datetime) -> int:
    """Absolute emergency minutes used since a timestamp."""
    return abs(await get_store().sum_amount(user_id, "emergency", since=since))


async def calculate_available_credits(user_id: PydanticObjectId, now: datetime | None = None) -> int:
    """
    Authoritative balance: unexpired earned minus spent, never below zero.

    Expired rows are not read: an expired lot already drops out through the
    ``expires_at`` filter, whether or not the sweeper has reached it yet.
    Emergency rows belong to a separate pool.
    """
    now = now or datetime.utcnow()
    earned = await get_store().sum_amount(user_id, "earned", unexpired_at=now)
    spent = await sum_spent(user_id)
    return max(0, earned - spent)


@asynccontextmanager
async def ledger_lock(user_id: PydanticObjectId) -> AsyncIterator[None]:
    """
    Serialize check-then-append for one user across all app and worker instances.

    The lock is a lease in the ledger store, renewed every third of
    LEDGER_LOCK_TTL_SECONDS while the body runs, so a slow holder keeps it. A
    crashed holder blocks the user for at most one TTL. Raises LedgerBusyError
    if the lease is not obtained within LEDGER_LOCK_TIMEOUT_SECONDS.
    """
    settings = get_settings()
    store = get_store()
    key = f"credits:{user_id}"
    holder = secrets.token_hex(8)
    deadline = time.monotonic() + settings.ledger_lock_timeout_seconds
    waited = False
    while not await store.try_lock(key, holder, settings.ledger_lock_ttl_seconds):
        if time.monotonic() >= deadline:
            log.warning("ledger_lock_timeout", user_id=str(user_id))
            raise LedgerBusyError()
        if not waited:
            log.debug("ledger_lock_contended", user_id=str(user_id))
            waited = True
        await asyncio.sleep(settings.ledger_lock_poll_seconds)
    keeper = asyncio.create_task(_keep_lease(user_id, key, holder, settings.ledger_lock_ttl_seconds))
    try:
        yield
    finally:
        keeper.cancel()
        await store.release_lock(key, holder)


async def _keep_lease(user_id: PydanticObjectId, key: str, holder: str, ttl: float) -> None:
    store = get_store()
    while True:
        await asyncio.sleep(ttl / 3)
        try:
            renewed = await store.renew_lock(key, holder, ttl)
        except Exception as e:
            log.warning("ledger_lock_renew_failed", user_id=str(user_id), error=repr(e))
            continue
        if not renewed:
            log.warning("ledger_lock_lost", user_id=str(user_id))
            return
