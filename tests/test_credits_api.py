"""HTTP adapter over the ledger: status codes and payload shapes."""

import pytest
from beanie import PydanticObjectId
from pymongo.errors import ServerSelectionTimeoutError

pytestmark = pytest.mark.asyncio


def _auth(user):
    return {"X-User-ID": str(user.id)}


async def test_requires_user_header(client):
    r = await client.get("/v1/credits/balance")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"

    r = await client.get("/v1/credits/balance", headers={"X-User-ID": "nope"})
    assert r.status_code == 401

    r = await client.get("/v1/credits/balance", headers={"X-User-ID": str(PydanticObjectId())})
    assert r.status_code == 401


async def test_award_spend_balance_flow(client, make_user, make_workout):
    user = make_user(max_daily_credits=480, emergency_credits=30)
    workout = make_workout(user, type="running", duration=20)

    r = await client.post(f"/v1/workouts/{workout.id}/award", headers=_auth(user))
    assert r.status_code == 200
    assert r.json() == {"credits_awarded": 240, "available_credits": 240}

    r = await client.post(f"/v1/workouts/{workout.id}/award", headers=_auth(user))
    assert r.json()["credits_awarded"] == 0

    r = await client.post("/v1/credits/spend", json={"minutes": 100}, headers=_auth(user))
    assert r.status_code == 200
    assert r.json() == {"spent": 100, "remaining": 140}

    r = await client.get("/v1/credits/balance", headers=_auth(user))
    assert r.json() == {
        "available_credits": 140,
        "emergency_credits": 30,
        "total_earned": 240,
        "total_spent": 100,
    }


async def test_award_with_ratio_override(client, make_user, make_workout):
    user = make_user()
    workout = make_workout(user, type="walking", duration=10)
    r = await client.post(f"/v1/workouts/{workout.id}/award", json={"ratio": 20}, headers=_auth(user))
    assert r.json()["credits_awarded"] == 200


async def test_award_unknown_workout_is_404(client, make_user):
    user = make_user()
    r = await client.post(f"/v1/workouts/{PydanticObjectId()}/award", headers=_auth(user))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


async def test_insufficient_credits_is_402(client, make_user):
    user = make_user()
    r = await client.post("/v1/credits/spend", json={"minutes": 10}, headers=_auth(user))
    assert r.status_code == 402
    assert r.json()["error"]["code"] == "INSUFFICIENT_CREDITS"


async def test_emergency_endpoint(client, make_user):
    user = make_user(emergency_credits=60)

    r = await client.post("/v1/credits/emergency", json={"minutes": 45}, headers=_auth(user))
    assert r.status_code == 200
    assert r.json() == {"emergency_used": 45, "emergency_remaining": 15}

    r = await client.post("/v1/credits/emergency", json={"minutes": 20}, headers=_auth(user))
    assert r.status_code == 402
    assert r.json()["error"]["code"] == "INSUFFICIENT_EMERGENCY_CREDITS"


@pytest.mark.parametrize(
    "path,minutes",
    [("/v1/credits/spend", 0), ("/v1/credits/spend", 481), ("/v1/credits/emergency", 61)],
)
async def test_minutes_validation(client, make_user, path, minutes):
    user = make_user()
    r = await client.post(path, json={"minutes": minutes}, headers=_auth(user))
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_transactions_and_stats(client, make_user, make_workout):
    user = make_user()
    await client.post(f"/v1/workouts/{make_workout(user, type='yoga', duration=6).id}/award", headers=_auth(user))
    await client.post("/v1/credits/spend", json={"minutes": 15, "reason": "Refactor"}, headers=_auth(user))

    r = await client.get("/v1/credits/transactions", params={"limit": 10}, headers=_auth(user))
    body = r.json()
    assert body["total"] == 2
    assert body["has_more"] is False
    assert {t["type"] for t in body["transactions"]} == {"earned", "spent"}
    spent = next(t for t in body["transactions"] if t["type"] == "spent")
    assert spent["amount"] == -15
    assert spent["reason"] == "Refactor"
    assert spent["expires_at"] is None

    r = await client.get("/v1/credits/stats", params={"days": 3}, headers=_auth(user))
    stats = r.json()
    assert stats["period_days"] == 3
    assert stats["daily_stats"][-1]["earned"] == 60
    assert stats["daily_stats"][-1]["spent"] == 15


async def test_store_failure_is_503(client, make_user, monkeypatch):
    from app.services import credits as credits_service

    user = make_user()

    async def down(user_id):
        raise ServerSelectionTimeoutError("no primary")

    monkeypatch.setattr(credits_service, "get_total_earned", down)
    r = await client.get("/v1/credits/balance", headers=_auth(user))
    assert r.status_code == 503
    assert r.json()["error"]["code"] == "STORE_UNAVAILABLE"


async def test_busy_ledger_is_503(client, store, make_user, monkeypatch):
    from app.core.config import get_settings

    monkeypatch.setattr(get_settings(), "ledger_lock_timeout_seconds", 0.02)
    user = make_user()
    await store.try_lock(f"credits:{user.id}", "another-instance", 60)

    r = await client.post("/v1/credits/emergency", json={"minutes": 5}, headers=_auth(user))
    assert r.status_code == 503
    assert r.json()["error"]["code"] == "LEDGER_BUSY"
