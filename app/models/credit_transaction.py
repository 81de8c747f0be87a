from datetime import datetime
from typing import Literal

from beanie import PydanticObjectId
from pydantic import BaseModel, Field, model_validator

TransactionType = Literal["earned", "spent", "expired", "emergency"]


class CreditTransaction(BaseModel):
    """
    One row of the append-only credit ledger.

    Rows are appended once and never rewritten. The only permitted change is
    the sweeper flipping ``processed`` on an earned row, which every store
    exposes as a single conditional operation (``mark_transaction_processed``).
    """

    id: PydanticObjectId | None = None
    user_id: PydanticObjectId
    type: TransactionType
    amount: int  # minutes; earned > 0, everything else <= 0
    workout_id: PydanticObjectId | None = None  # earned only
    source_transaction_id: PydanticObjectId | None = None  # expired only
    reason: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    expires_at: datetime | None = None  # earned only
    processed: bool | None = None  # earned only; True once swept

    @model_validator(mode="after")
    def _check_shape(self) -> "CreditTransaction":
        if self.type == "earned":
            if self.amount <= 0:
                raise ValueError("earned amount must be positive")
        else:
            if self.amount > 0:
                raise ValueError(f"{self.type} amount must not be positive")
            if self.expires_at is not None or self.workout_id is not None:
                raise ValueError("only earned transactions carry expires_at or workout_id")
        return self
