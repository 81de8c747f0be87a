from abc import ABC, abstractmethod
from datetime import datetime

from beanie import PydanticObjectId

from app.core.config import get_settings
from app.models.credit_transaction import CreditTransaction, TransactionType
from app.models.failed_job import FailedJob
from app.models.user import User
from app.models.workout import Workout


class LedgerStore(ABC):
    """
    Durable side of the ledger.

    Users and workouts are read-only here apart from the workout ``processed``
    flag. Transactions are append-only apart from the earned ``processed``
    flag. Both flag updates are conditional and report whether this caller
    made the transition.
    """

    async def close(self) -> None:
        """Release connections; a no-op by default."""
        return None

    # users / workouts

    @abstractmethod
    async def get_user(self, user_id: PydanticObjectId) -> User | None:
        ...

    @abstractmethod
    async def get_workout(self, workout_id: PydanticObjectId) -> Workout | None:
        ...

    @abstractmethod
    async def mark_workout_processed(self, workout_id: PydanticObjectId) -> bool:
        """Flip processed false -> true. False if it was already set."""
        ...

    # ledger

    @abstractmethod
    async def append(self, transaction: CreditTransaction) -> CreditTransaction:
        """Insert a new row; return it with its id."""
        ...

    @abstractmethod
    async def sum_amount(
        self,
        user_id: PydanticObjectId,
        tx_type: TransactionType,
        since: datetime | None = None,
        unexpired_at: datetime | None = None,
    ) -> int:
        """
        Signed sum of ``amount`` for one user and type.

        ``since`` keeps rows with timestamp >= since. ``unexpired_at`` keeps rows
        with no expires_at or expires_at > unexpired_at.
        """
        ...

    @abstractmethod
    async def find_earned_for_workout(self, workout_id: PydanticObjectId) -> CreditTransaction | None:
        ...

    @abstractmethod
    async def find_lapsed_earned(self, now: datetime, limit: int) -> list[CreditTransaction]:
        """Unprocessed earned rows with expires_at < now, soonest expiry first."""
        ...

    @abstractmethod
    async def mark_transaction_processed(self, transaction_id: PydanticObjectId) -> bool:
        """Flip an earned row to processed. True only for the caller that made the change."""
        ...

    @abstractmethod
    async def list_transactions(self, user_id: PydanticObjectId, limit: int, offset: int) -> list[CreditTransaction]:
        """Newest first."""
        ...

    @abstractmethod
    async def count_transactions(self, user_id: PydanticObjectId) -> int:
        ...

    @abstractmethod
    async def transactions_since(self, user_id: PydanticObjectId, since: datetime) -> list[CreditTransaction]:
        ...

    # per-user lease

    @abstractmethod
    async def try_lock(self, key: str, holder: str, ttl_seconds: float) -> bool:
        """Take the lease if it is free or lapsed."""
        ...

    @abstractmethod
    async def renew_lock(self, key: str, holder: str, ttl_seconds: float) -> bool:
        """Push the lease end out by ``ttl_seconds``. False if ``holder`` no longer has it."""
        ...

    @abstractmethod
    async def release_lock(self, key: str, holder: str) -> None:
        """Give the lease back if ``holder`` still has it."""
        ...

    # dead letters

    @abstractmethod
    async def record_failed_job(self, job: FailedJob) -> None:
        ...


_store: LedgerStore | None = None


async def init_store() -> LedgerStore:
    """Create the configured backend (app/worker startup)."""
    global _store
    if get_settings().ledger_store_backend == "memory":
        from app.storage.memory import MemoryLedgerStore
        _store = MemoryLedgerStore()
    else:
        from app.db.init import init_db
        from app.storage.mongo import MongoLedgerStore
        _store = MongoLedgerStore(await init_db())
    return _store


def set_store(store: LedgerStore | None) -> None:
    global _store
    _store = store


def get_store() -> LedgerStore:
    if _store is None:
        raise RuntimeError("Ledger store not initialised; call init_store() on startup")
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        store, _store = _store, None
        await store.close()
