"""Beanie documents: the ledger records plus their MongoDB collection settings."""

from datetime import datetime

from beanie import Document, Indexed

from app.models.credit_transaction import CreditTransaction
from app.models.failed_job import FailedJob
from app.models.user import User
from app.models.workout import Workout


class UserDocument(Document, User):
    email: Indexed(str, unique=True)

    class Settings:
        name = "users"


class WorkoutDocument(Document, Workout):
    class Settings:
        name = "workouts"
        indexes = [
            [("user_id", 1), ("start_time", -1)],
            [("processed", 1)],
        ]


class CreditTransactionDocument(Document, CreditTransaction):
    class Settings:
        name = "credit_transactions"
        indexes = [
            [("user_id", 1), ("timestamp", -1)],
            [("user_id", 1), ("type", 1)],
            [("expires_at", 1)],
            [("workout_id", 1)],
        ]


class LedgerLockDocument(Document):
    """Lease held while one user's ledger is checked and appended to."""

    id: str  # "credits:<user_id>"
    holder: str | None = None
    expires_at: datetime

    class Settings:
        name = "ledger_locks"


class FailedJobDocument(Document, FailedJob):
    class Settings:
        name = "failed_jobs"
        indexes = [[("job_name", 1)], [("failed_at", -1)]]
