"""Credit ledger operations: award for workouts, spend on coding, emergency unlocks."""

import math
from datetime import datetime, timedelta

from beanie import PydanticObjectId

from app.core.config import get_settings
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.models.credit_transaction import CreditTransaction
from app.models.user import User
from app.models.workout import Workout
from app.services import credit_cache, ledger
from app.services.workout_ratio import resolve_ratio
from app.storage.base import get_store

log = get_logger(__name__)

DEFAULT_SPEND_REASON = "Coding session"


async def _get_user(user_id: PydanticObjectId) -> User:
    user = await get_store().get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def _get_workout(user_id: PydanticObjectId, workout_id: PydanticObjectId) -> Workout:
    workout = await get_store().get_workout(workout_id)
    if not workout or workout.user_id != user_id:
        raise NotFoundError("Workout not found")
    return workout


async def award_credits(
    user_id: PydanticObjectId,
    workout_id: PydanticObjectId,
    ratio_override: float | None = None,
) -> int:
    """
    Convert a completed workout into earned credits, capped per local day.

    Returns the minutes awarded. 0 means nothing was written: the workout was
    already rewarded, or today's cap is used up (the workout then stays
    unprocessed so it can still be rewarded after the cap resets).
    """
    if ratio_override is not None and ratio_override <= 0:
        raise BadRequestError("Credit ratio must be positive")
    store = get_store()
    user = await _get_user(user_id)
    await _get_workout(user_id, workout_id)

    async with ledger.ledger_lock(user_id):
        workout = await _get_workout(user_id, workout_id)
        if workout.processed:
            log.info("award_skipped_processed", user_id=str(user_id), workout_id=str(workout_id))
            return 0

        # A previous attempt may have written the row and died before flagging the workout.
        existing = await store.find_earned_for_workout(workout_id)
        if existing:
            await store.mark_workout_processed(workout_id)
            log.info("award_recovered", user_id=str(user_id), workout_id=str(workout_id), amount=existing.amount)
            return 0

        ratio = resolve_ratio(workout.type, user.settings.workout_credit_ratio, ratio_override)
        base = math.floor(workout.duration * ratio)
        today_earned = await ledger.sum_earned(user_id, since=ledger.start_of_local_day())
        remaining_daily = max(0, user.settings.max_daily_credits - today_earned)
        credits = min(base, remaining_daily)
        if credits <= 0:
            log.info(
                "award_capped",
                user_id=str(user_id),
                workout_id=str(workout_id),
                today_earned=today_earned,
                cap=user.settings.max_daily_credits,
            )
            return 0

        now = datetime.utcnow()
        await store.append(
            CreditTransaction(
                user_id=user_id,
                type="earned",
                amount=credits,
                workout_id=workout_id,
                reason=f"Workout completed: {credits} minutes earned",
                timestamp=now,
                expires_at=now + timedelta(hours=user.settings.credit_expiration),
                processed=False,
            )
        )
        # row is durable before the flag: a retry after a crash here hits the recovery path above
        await store.mark_workout_processed(workout_id)
        # under the lock so concurrent writers cannot reorder cached balances
        await credit_cache.refresh_balance(user_id)

    log.info(
        "credits_awarded",
        user_id=str(user_id),
        workout_id=str(workout_id),
        credits=credits,
        ratio=ratio,
        base=base,
    )
    return credits


async def spend_credits(
    user_id: PydanticObjectId,
    minutes: int,
    reason: str = DEFAULT_SPEND_REASON,
) -> bool:
    """Debit coding minutes. False (and no row) when the balance does not cover them."""
    if minutes <= 0:
        raise BadRequestError("Minutes must be positive")
    async with ledger.ledger_lock(user_id):
        available = await ledger.calculate_available_credits(user_id)
        if available < minutes:
            log.info("credits_spend_denied", user_id=str(user_id), minutes=minutes, available=available)
            return False
        await get_store().append(
            CreditTransaction(
                user_id=user_id,
                type="spent",
                amount=-minutes,
                reason=reason or DEFAULT_SPEND_REASON,
            )
        )
        await credit_cache.refresh_balance(user_id)

    log.info("credits_spent", user_id=str(user_id), minutes=minutes, reason=reason)
    return True


async def use_emergency_credits(user_id: PydanticObjectId, minutes: int) -> bool:
    """Draw from the daily emergency pool; never touches the earned balance."""
    max_minutes = get_settings().emergency_max_minutes_per_call
    if minutes <= 0 or minutes > max_minutes:
        raise BadRequestError(f"Emergency minutes must be between 1 and {max_minutes}")
    user = await _get_user(user_id)
    async with ledger.ledger_lock(user_id):
        used_today = await ledger.sum_emergency(user_id, since=ledger.start_of_local_day())
        available = user.settings.emergency_credits - used_today
        if available < minutes:
            log.info("emergency_credits_denied", user_id=str(user_id), minutes=minutes, available=available)
            return False
        await get_store().append(
            CreditTransaction(
                user_id=user_id,
                type="emergency",
                amount=-minutes,
                reason="Emergency unlock",
            )
        )
        await credit_cache.refresh_balance(user_id)

    log.info("emergency_credits_used", user_id=str(user_id), minutes=minutes, used_today=used_today + minutes)
    return True


async def get_available_credits(user_id: PydanticObjectId) -> int:
    return await credit_cache.get_available_credits(user_id)


async def get_total_earned(user_id: PydanticObjectId) -> int:
    return await ledger.sum_earned(user_id)


async def get_total_spent(user_id: PydanticObjectId) -> int:
    return await ledger.sum_spent(user_id)


async def get_emergency_remaining(user_id: PydanticObjectId) -> int:
    """Emergency minutes still available today."""
    user = await _get_user(user_id)
    used_today = await ledger.sum_emergency(user_id, since=ledger.start_of_local_day())
    return max(0, user.settings.emergency_credits - used_today)


async def list_transactions(
    user_id: PydanticObjectId,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[CreditTransaction], int]:
    """Newest first, with the total row count for pagination."""
    limit = max(1, min(limit, 100))
    offset = max(0, offset)
    store = get_store()
    rows = await store.list_transactions(user_id, limit, offset)
    return rows, await store.count_transactions(user_id)


async def get_daily_stats(user_id: PydanticObjectId, days: int = 7) -> list[dict]:
    """Per local day: minutes earned, spent and used from the emergency pool, oldest day first."""
    days = max(1, min(days, 30))
    since = ledger.start_of_local_day() - timedelta(days=days - 1)
    buckets: dict[str, dict] = {}
    for tx in await get_store().transactions_since(user_id, since):
        if tx.type == "expired":
            continue
        date = ledger.local_date(tx.timestamp)
        day = buckets.setdefault(date, {"date": date, "earned": 0, "spent": 0, "emergency": 0})
        day[tx.type] += abs(tx.amount)
    return [buckets[d] for d in sorted(buckets)]
