"""Single-process ledger store for local development and tests. Not shared across instances."""

from datetime import datetime, timedelta

from beanie import PydanticObjectId

from app.models.credit_transaction import CreditTransaction, TransactionType
from app.models.failed_job import FailedJob
from app.models.user import User
from app.models.workout import Workout
from app.storage.base import LedgerStore


class MemoryLedgerStore(LedgerStore):
    def __init__(self) -> None:
        self.users: dict[PydanticObjectId, User] = {}
        self.workouts: dict[PydanticObjectId, Workout] = {}
        self.transactions: list[CreditTransaction] = []
        self.failed_jobs: list[FailedJob] = []
        self._locks: dict[str, tuple[str, datetime]] = {}

    # seeding (the user and workout stores are owned by other services)

    def add_user(self, user: User) -> User:
        user = user.model_copy(update={"id": user.id or PydanticObjectId()})
        self.users[user.id] = user
        return user.model_copy()

    def add_workout(self, workout: Workout) -> Workout:
        workout = workout.model_copy(update={"id": workout.id or PydanticObjectId()})
        self.workouts[workout.id] = workout
        return workout.model_copy()

    # LedgerStore

    async def get_user(self, user_id: PydanticObjectId) -> User | None:
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    async def get_workout(self, workout_id: PydanticObjectId) -> Workout | None:
        workout = self.workouts.get(workout_id)
        return workout.model_copy() if workout else None

    async def mark_workout_processed(self, workout_id: PydanticObjectId) -> bool:
        workout = self.workouts.get(workout_id)
        if workout is None or workout.processed:
            return False
        self.workouts[workout_id] = workout.model_copy(update={"processed": True})
        return True

    async def append(self, transaction: CreditTransaction) -> CreditTransaction:
        row = transaction.model_copy(update={"id": PydanticObjectId()})
        self.transactions.append(row)
        return row.model_copy()

    async def sum_amount(
        self,
        user_id: PydanticObjectId,
        tx_type: TransactionType,
        since: datetime | None = None,
        unexpired_at: datetime | None = None,
    ) -> int:
        total = 0
        for t in self.transactions:
            if t.user_id != user_id or t.type != tx_type:
                continue
            if since is not None and t.timestamp < since:
                continue
            if unexpired_at is not None and t.expires_at is not None and t.expires_at <= unexpired_at:
                continue
            total += t.amount
        return total

    async def find_earned_for_workout(self, workout_id: PydanticObjectId) -> CreditTransaction | None:
        for t in self.transactions:
            if t.type == "earned" and t.workout_id == workout_id:
                return t.model_copy()
        return None

    async def find_lapsed_earned(self, now: datetime, limit: int) -> list[CreditTransaction]:
        lapsed = [
            t for t in self.transactions
            if t.type == "earned" and t.expires_at is not None and t.expires_at < now and t.processed is not True
        ]
        lapsed.sort(key=lambda t: t.expires_at)
        return [t.model_copy() for t in lapsed[:limit]]

    async def mark_transaction_processed(self, transaction_id: PydanticObjectId) -> bool:
        for i, t in enumerate(self.transactions):
            if t.id == transaction_id:
                if t.type != "earned" or t.processed is True:
                    return False
                self.transactions[i] = t.model_copy(update={"processed": True})
                return True
        return False

    async def list_transactions(self, user_id: PydanticObjectId, limit: int, offset: int) -> list[CreditTransaction]:
        rows = sorted(
            (t for t in self.transactions if t.user_id == user_id),
            key=lambda t: t.timestamp,
            reverse=True,
        )
        return [t.model_copy() for t in rows[offset:offset + limit]]

    async def count_transactions(self, user_id: PydanticObjectId) -> int:
        return sum(1 for t in self.transactions if t.user_id == user_id)

    async def transactions_since(self, user_id: PydanticObjectId, since: datetime) -> list[CreditTransaction]:
        return [t.model_copy() for t in self.transactions if t.user_id == user_id and t.timestamp >= since]

    async def try_lock(self, key: str, holder: str, ttl_seconds: float) -> bool:
        now = datetime.utcnow()
        current = self._locks.get(key)
        if current is not None and current[1] >= now:
            return False
        self._locks[key] = (holder, now + timedelta(seconds=ttl_seconds))
        return True

    async def renew_lock(self, key: str, holder: str, ttl_seconds: float) -> bool:
        now = datetime.utcnow()
        current = self._locks.get(key)
        if current is None or current[0] != holder or current[1] < now:
            return False
        self._locks[key] = (holder, now + timedelta(seconds=ttl_seconds))
        return True

    async def release_lock(self, key: str, holder: str) -> None:
        current = self._locks.get(key)
        if current is not None and current[0] == holder:
            del self._locks[key]

    async def record_failed_job(self, job: FailedJob) -> None:
        self.failed_jobs.append(job.model_copy(update={"id": PydanticObjectId()}))
