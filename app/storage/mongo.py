from datetime import datetime, timedelta

from beanie import PydanticObjectId
from beanie.operators import Or
from pymongo import AsyncMongoClient
from pymongo.errors import DuplicateKeyError

from app.db.documents import (
    CreditTransactionDocument,
    FailedJobDocument,
    LedgerLockDocument,
    UserDocument,
    WorkoutDocument,
)
from app.models.credit_transaction import CreditTransaction, TransactionType
from app.models.failed_job import FailedJob
from app.models.user import User
from app.models.workout import Workout
from app.storage.base import LedgerStore

_RELEASED = datetime(1970, 1, 1)


class MongoLedgerStore(LedgerStore):
    """MongoDB via Beanie. Call init_db() before constructing."""

    def __init__(self, client: AsyncMongoClient | None = None) -> None:
        self._client = client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def get_user(self, user_id: PydanticObjectId) -> User | None:
        return await UserDocument.get(user_id)

    async def get_workout(self, workout_id: PydanticObjectId) -> Workout | None:
        return await WorkoutDocument.get(workout_id)

    async def mark_workout_processed(self, workout_id: PydanticObjectId) -> bool:
        result = await WorkoutDocument.get_pymongo_collection().update_one(
            {"_id": workout_id, "processed": {"$ne": True}},
            {"$set": {"processed": True}},
        )
        return result.modified_count == 1

    async def append(self, transaction: CreditTransaction) -> CreditTransaction:
        doc = CreditTransactionDocument(**transaction.model_dump(exclude={"id"}))
        await doc.insert()
        return doc

    async def sum_amount(
        self,
        user_id: PydanticObjectId,
        tx_type: TransactionType,
        since: datetime | None = None,
        unexpired_at: datetime | None = None,
    ) -> int:
        conditions = [
            CreditTransactionDocument.user_id == user_id,
            CreditTransactionDocument.type == tx_type,
        ]
        if since is not None:
            conditions.append(CreditTransactionDocument.timestamp >= since)
        if unexpired_at is not None:
            conditions.append(
                Or(
                    CreditTransactionDocument.expires_at == None,  # noqa: E711
                    CreditTransactionDocument.expires_at > unexpired_at,
                )
            )
        total = await CreditTransactionDocument.find(*conditions).sum(CreditTransactionDocument.amount)
        return int(total or 0)

    async def find_earned_for_workout(self, workout_id: PydanticObjectId) -> CreditTransaction | None:
        return await CreditTransactionDocument.find_one(
            CreditTransactionDocument.workout_id == workout_id,
            CreditTransactionDocument.type == "earned",
        )

    async def find_lapsed_earned(self, now: datetime, limit: int) -> list[CreditTransaction]:
        return (
            await CreditTransactionDocument.find(
                CreditTransactionDocument.type == "earned",
                CreditTransactionDocument.expires_at < now,
                CreditTransactionDocument.processed != True,  # noqa: E712
            )
            .sort(+CreditTransactionDocument.expires_at)
            .limit(limit)
            .to_list()
        )

    async def mark_transaction_processed(self, transaction_id: PydanticObjectId) -> bool:
        result = await CreditTransactionDocument.get_pymongo_collection().update_one(
            {"_id": transaction_id, "type": "earned", "processed": {"$ne": True}},
            {"$set": {"processed": True}},
        )
        return result.modified_count == 1

    async def list_transactions(self, user_id: PydanticObjectId, limit: int, offset: int) -> list[CreditTransaction]:
        return (
            await CreditTransactionDocument.find(CreditTransactionDocument.user_id == user_id)
            .sort(-CreditTransactionDocument.timestamp)
            .skip(offset)
            .limit(limit)
            .to_list()
        )

    async def count_transactions(self, user_id: PydanticObjectId) -> int:
        return await CreditTransactionDocument.find(CreditTransactionDocument.user_id == user_id).count()

    async def transactions_since(self, user_id: PydanticObjectId, since: datetime) -> list[CreditTransaction]:
        return await CreditTransactionDocument.find(
            CreditTransactionDocument.user_id == user_id,
            CreditTransactionDocument.timestamp >= since,
        ).to_list()

    async def try_lock(self, key: str, holder: str, ttl_seconds: float) -> bool:
        # Matches only a lapsed lease. When the key is held the upsert collides on _id.
        now = datetime.utcnow()
        try:
            await LedgerLockDocument.get_pymongo_collection().update_one(
                {"_id": key, "expires_at": {"$lt": now}},
                {"$set": {"holder": holder, "expires_at": now + timedelta(seconds=ttl_seconds)}},
                upsert=True,
            )
        except DuplicateKeyError:
            return False
        return True

    async def renew_lock(self, key: str, holder: str, ttl_seconds: float) -> bool:
        now = datetime.utcnow()
        result = await LedgerLockDocument.get_pymongo_collection().update_one(
            {"_id": key, "holder": holder, "expires_at": {"$gte": now}},
            {"$set": {"expires_at": now + timedelta(seconds=ttl_seconds)}},
        )
        return result.matched_count == 1

    async def release_lock(self, key: str, holder: str) -> None:
        await LedgerLockDocument.get_pymongo_collection().update_one(
            {"_id": key, "holder": holder},
            {"$set": {"holder": None, "expires_at": _RELEASED}},
        )

    async def record_failed_job(self, job: FailedJob) -> None:
        await FailedJobDocument(**job.model_dump(exclude={"id"})).insert()
