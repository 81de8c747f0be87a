"""Dead-letter: worker jobs that raised, kept for inspection and manual replay."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from pydantic import BaseModel, Field


class FailedJob(BaseModel):
    id: PydanticObjectId | None = None
    job_name: str
    job_id: str
    args: list[Any] = Field(default_factory=list)
    kwargs: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""
    failed_at: datetime = Field(default_factory=datetime.utcnow)
