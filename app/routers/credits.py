from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.exceptions import InsufficientCreditsError
from app.deps import get_current_user
from app.models.user import User
from app.services import credits as credits_service

router = APIRouter()


class SpendRequest(BaseModel):
    minutes: int = Field(ge=1, le=get_settings().spend_max_minutes_per_call)
    reason: str = Field(default=credits_service.DEFAULT_SPEND_REASON, max_length=200)


class EmergencyRequest(BaseModel):
    minutes: int = Field(ge=1, le=get_settings().emergency_max_minutes_per_call)


@router.get("/balance")
async def credits_balance(user: User = Depends(get_current_user)):
    """Available credits, today's emergency allowance, lifetime totals."""
    return {
        "available_credits": await credits_service.get_available_credits(user.id),
        "emergency_credits": await credits_service.get_emergency_remaining(user.id),
        "total_earned": await credits_service.get_total_earned(user.id),
        "total_spent": await credits_service.get_total_spent(user.id),
    }


@router.get("/transactions")
async def credits_transactions(
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Ledger rows for current user (newest first)."""
    rows, total = await credits_service.list_transactions(user.id, limit=limit, offset=offset)
    out = [
        {
            "id": str(t.id),
            "type": t.type,
            "amount": t.amount,
            "workout_id": str(t.workout_id) if t.workout_id else None,
            "reason": t.reason,
            "timestamp": t.timestamp.isoformat(),
            "expires_at": t.expires_at.isoformat() if t.expires_at else None,
        }
        for t in rows
    ]
    return {
        "transactions": out,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + limit < total,
    }


@router.post("/spend")
async def credits_spend(body: SpendRequest, user: User = Depends(get_current_user)):
    """Spend credits on a coding session. 402 when the balance does not cover it."""
    ok = await credits_service.spend_credits(user.id, body.minutes, body.reason)
    if not ok:
        raise InsufficientCreditsError(details={"requested": body.minutes})
    return {
        "spent": body.minutes,
        "remaining": await credits_service.get_available_credits(user.id),
    }


@router.post("/emergency")
async def credits_emergency(body: EmergencyRequest, user: User = Depends(get_current_user)):
    """Unlock from today's emergency pool. 402 when the pool is used up."""
    ok = await credits_service.use_emergency_credits(user.id, body.minutes)
    if not ok:
        raise InsufficientCreditsError(
            "Insufficient emergency credits",
            code="INSUFFICIENT_EMERGENCY_CREDITS",
            details={"requested": body.minutes},
        )
    return {
        "emergency_used": body.minutes,
        "emergency_remaining": await credits_service.get_emergency_remaining(user.id),
    }


@router.get("/stats")
async def credits_stats(
    user: User = Depends(get_current_user),
    days: int = Query(7, ge=1, le=30),
):
    """Daily earned / spent / emergency totals."""
    return {
        "daily_stats": await credits_service.get_daily_stats(user.id, days=days),
        "period_days": days,
    }
