"""Expiration sweep: close out earned credits past their expires_at."""

from datetime import datetime

from beanie import PydanticObjectId

from app.core.config import get_settings
from app.core.exceptions import LedgerBusyError
from app.core.logging import get_logger
from app.models.credit_transaction import CreditTransaction
from app.services import credit_cache, ledger
from app.storage.base import get_store

log = get_logger(__name__)


async def expire_credits(now: datetime | None = None) -> int:
    """
    Write one expired row per lapsed earned row and mark the earned row processed.

    Safe to run concurrently from several instances: the conditional
    processed flip decides which instance writes the paired row, and
    processed rows are never selected again. Returns how many rows this run
    expired.
    """
    now = now or datetime.utcnow()
    store = get_store()
    batch_size = get_settings().expiration_batch_size
    expired = 0
    affected: set[PydanticObjectId] = set()
    while True:
        batch = await store.find_lapsed_earned(now, batch_size)
        if not batch:
            break
        for credit in batch:
            if not await store.mark_transaction_processed(credit.id):
                continue  # another sweeper got it
            await store.append(
                CreditTransaction(
                    user_id=credit.user_id,
                    type="expired",
                    amount=-credit.amount,
                    source_transaction_id=credit.id,
                    reason=f"Credits expired from workout on {credit.timestamp:%a %b %d %Y}",
                )
            )
            expired += 1
            affected.add(credit.user_id)

    for user_id in affected:
        await _refresh_user(user_id)
    if expired:
        log.info("credits_expired", count=expired, users=len(affected))
    return expired


async def _refresh_user(user_id: PydanticObjectId) -> None:
    try:
        async with ledger.ledger_lock(user_id):
            await credit_cache.refresh_balance(user_id)
    except LedgerBusyError:
        # a writer holds the lease and refreshes on its way out; make sure no pre-expiry value survives
        log.info("credits_expired_cache_dropped", user_id=str(user_id))
        await credit_cache.drop_balance(user_id)
