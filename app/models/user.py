from datetime import datetime

from beanie import PydanticObjectId
from pydantic import BaseModel, Field


class CreditSettings(BaseModel):
    """Per-user knobs the ledger reads when awarding and spending."""

    workout_credit_ratio: float = Field(default=12.0, gt=0)  # fallback when workout has no type
    max_daily_credits: int = Field(default=480, ge=0)  # 8 hours
    emergency_credits: int = Field(default=30, ge=0)  # per local day
    credit_expiration: int = Field(default=48, ge=1)  # hours


class User(BaseModel):
    id: PydanticObjectId | None = None
    email: str
    name: str = ""
    settings: CreditSettings = Field(default_factory=CreditSettings)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
