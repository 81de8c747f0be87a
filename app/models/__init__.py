from app.models.user import CreditSettings, User
from app.models.workout import Workout
from app.models.credit_transaction import CreditTransaction
from app.models.failed_job import FailedJob

__all__ = [
    "User",
    "CreditSettings",
    "Workout",
    "CreditTransaction",
    "FailedJob",
]
