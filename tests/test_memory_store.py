"""MemoryLedgerStore: the conditional updates and filters the services rely on."""

from datetime import datetime, timedelta

import pytest
from beanie import PydanticObjectId

from app.models.credit_transaction import CreditTransaction

pytestmark = pytest.mark.asyncio


async def test_rows_get_ids_and_are_copies(store, make_user):
    user = make_user()
    row = await store.append(CreditTransaction(user_id=user.id, type="spent", amount=-5, reason="x"))

    assert row.id is not None
    row.reason = "changed"
    assert store.transactions[0].reason == "x"


async def test_sum_amount_filters(store):
    user_id = PydanticObjectId()
    now = datetime.utcnow()
    await store.append(CreditTransaction(
        user_id=user_id, type="earned", amount=50, reason="a",
        timestamp=now - timedelta(days=1), expires_at=now - timedelta(minutes=1), processed=False,
    ))
    await store.append(CreditTransaction(
        user_id=user_id, type="earned", amount=20, reason="b",
        timestamp=now, expires_at=now + timedelta(hours=1), processed=False,
    ))
    await store.append(CreditTransaction(
        user_id=PydanticObjectId(), type="earned", amount=999, reason="other user",
        timestamp=now, expires_at=now + timedelta(hours=1), processed=False,
    ))

    assert await store.sum_amount(user_id, "earned") == 70
    assert await store.sum_amount(user_id, "earned", since=now - timedelta(hours=1)) == 20
    assert await store.sum_amount(user_id, "earned", unexpired_at=now) == 20
    assert await store.sum_amount(user_id, "spent") == 0


async def test_lapsed_earned_oldest_first_and_limited(store):
    user_id = PydanticObjectId()
    now = datetime.utcnow()
    for hours in (3, 1, 2):
        await store.append(CreditTransaction(
            user_id=user_id, type="earned", amount=hours, reason="r",
            timestamp=now - timedelta(hours=48 + hours), expires_at=now - timedelta(hours=hours), processed=False,
        ))

    lapsed = await store.find_lapsed_earned(now, 2)
    assert [t.amount for t in lapsed] == [3, 2]


async def test_spent_rows_cannot_be_marked_processed(store):
    row = await store.append(CreditTransaction(user_id=PydanticObjectId(), type="spent", amount=-1, reason="x"))
    assert await store.mark_transaction_processed(row.id) is False
    assert await store.mark_transaction_processed(PydanticObjectId()) is False


async def test_unknown_workout_is_not_marked(store):
    assert await store.mark_workout_processed(PydanticObjectId()) is False
