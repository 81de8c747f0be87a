from beanie import PydanticObjectId
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.deps import get_current_user
from app.models.user import User
from app.services import credits as credits_service

router = APIRouter()


class AwardRequest(BaseModel):
    ratio: float | None = Field(default=None, gt=0, description="Overrides the workout-type ratio")


@router.post("/{workout_id}/award")
async def workout_award(
    workout_id: PydanticObjectId,
    body: AwardRequest | None = None,
    user: User = Depends(get_current_user),
):
    """Award credits for a completed workout. 0 if already rewarded or capped for today."""
    ratio = body.ratio if body else None
    awarded = await credits_service.award_credits(user.id, workout_id, ratio_override=ratio)
    return {
        "credits_awarded": awarded,
        "available_credits": await credits_service.get_available_credits(user.id),
    }
