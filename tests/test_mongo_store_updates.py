"""MongoLedgerStore conditional updates, checked against a stand-in collection (no server needed)."""

from types import SimpleNamespace

import pytest
from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError

from app.db.documents import CreditTransactionDocument, LedgerLockDocument, WorkoutDocument
from app.storage.mongo import MongoLedgerStore

pytestmark = pytest.mark.asyncio


class RecordingCollection:
    def __init__(self, modified=1, matched=1, error=None):
        self.calls = []
        self._result = SimpleNamespace(modified_count=modified, matched_count=matched)
        self._error = error

    async def update_one(self, filter, update, upsert=False):
        self.calls.append((filter, update, upsert))
        if self._error is not None:
            raise self._error
        return self._result


@pytest.fixture
def collection(monkeypatch):
    def install(document, **kwargs):
        fake = RecordingCollection(**kwargs)
        monkeypatch.setattr(document, "get_pymongo_collection", lambda: fake)
        return fake

    return install


async def test_try_lock_takes_only_lapsed_lease(collection):
    fake = collection(LedgerLockDocument)

    assert await MongoLedgerStore().try_lock("credits:u1", "h1", 10) is True

    ((filter, update, upsert),) = fake.calls
    assert upsert is True
    assert filter["_id"] == "credits:u1"
    assert "$lt" in filter["expires_at"]
    assert update["$set"]["holder"] == "h1"
    assert update["$set"]["expires_at"] > filter["expires_at"]["$lt"]


async def test_try_lock_duplicate_key_means_held(collection):
    collection(LedgerLockDocument, error=DuplicateKeyError("E11000 duplicate key"))
    assert await MongoLedgerStore().try_lock("credits:u1", "h2", 10) is False


async def test_renew_and_release_are_scoped_to_holder(collection):
    fake = collection(LedgerLockDocument, matched=0)
    store = MongoLedgerStore()

    assert await store.renew_lock("credits:u1", "h1", 10) is False
    await store.release_lock("credits:u1", "h1")

    (renew_filter, _, _), (release_filter, release_update, _) = fake.calls
    assert renew_filter["holder"] == "h1"
    assert "$gte" in renew_filter["expires_at"]
    assert release_filter == {"_id": "credits:u1", "holder": "h1"}
    assert release_update["$set"]["holder"] is None


@pytest.mark.parametrize("modified,expected", [(1, True), (0, False)])
async def test_transaction_processed_flip_is_conditional(collection, modified, expected):
    fake = collection(CreditTransactionDocument, modified=modified)
    tx_id = PydanticObjectId()

    assert await MongoLedgerStore().mark_transaction_processed(tx_id) is expected

    ((filter, update, upsert),) = fake.calls
    assert filter == {"_id": tx_id, "type": "earned", "processed": {"$ne": True}}
    assert update == {"$set": {"processed": True}}
    assert upsert is False


@pytest.mark.parametrize("modified,expected", [(1, True), (0, False)])
async def test_workout_processed_flip_is_conditional(collection, modified, expected):
    fake = collection(WorkoutDocument, modified=modified)
    workout_id = PydanticObjectId()

    assert await MongoLedgerStore().mark_workout_processed(workout_id) is expected

    ((filter, update, _),) = fake.calls
    assert filter == {"_id": workout_id, "processed": {"$ne": True}}
    assert update == {"$set": {"processed": True}}
