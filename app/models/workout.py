from datetime import datetime
from typing import Literal

from beanie import PydanticObjectId
from pydantic import BaseModel, Field

WorkoutSource = Literal["whoop", "strava", "fitbit", "apple-health", "google-fit", "manual"]


class Workout(BaseModel):
    id: PydanticObjectId | None = None
    user_id: PydanticObjectId
    source: WorkoutSource = "manual"
    type: str  # free text from the provider, e.g. "Outdoor Run"
    start_time: datetime
    end_time: datetime
    duration: int = Field(ge=1)  # minutes
    calories: float | None = Field(default=None, ge=0)
    distance: float | None = Field(default=None, ge=0)
    verified: bool = False
    processed: bool = False  # credits already awarded
    created_at: datetime = Field(default_factory=datetime.utcnow)
