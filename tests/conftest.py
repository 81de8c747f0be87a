import os
import uuid
from datetime import datetime, timedelta
from typing import AsyncGenerator

import fakeredis.aioredis
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# No real services in tests: in-memory ledger store, fakeredis (opt-in) for the cache
os.environ["LEDGER_STORE_BACKEND"] = "memory"
os.environ["REDIS_URL"] = ""
os.environ.setdefault("LEDGER_TIMEZONE", "UTC")
os.environ.setdefault("LEDGER_LOCK_POLL_SECONDS", "0.005")
os.environ.setdefault("LEDGER_LOCK_TIMEOUT_SECONDS", "2")


@pytest_asyncio.fixture(autouse=True)
async def store():
    from app.services import credit_cache
    from app.storage.base import set_store
    from app.storage.memory import MemoryLedgerStore
    memory = MemoryLedgerStore()
    set_store(memory)
    credit_cache.init_cache()  # REDIS_URL is empty: cache disabled unless a test opts in
    yield memory
    await credit_cache.close_cache()
    set_store(None)


@pytest_asyncio.fixture
async def cache():
    from app.services import credit_cache
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    credit_cache.init_cache(redis)
    yield redis


@pytest_asyncio.fixture
async def make_user(store):
    from app.models.user import CreditSettings, User

    def _make(**settings) -> User:
        return store.add_user(
            User(email=f"{uuid.uuid4().hex[:8]}@example.com", settings=CreditSettings(**settings))
        )

    return _make


@pytest_asyncio.fixture
async def make_workout(store):
    from app.models.workout import Workout

    def _make(user, type: str = "Running", duration: int = 20, **kwargs) -> Workout:
        end = datetime.utcnow()
        return store.add_workout(
            Workout(
                user_id=user.id,
                type=type,
                start_time=end - timedelta(minutes=duration),
                end_time=end,
                duration=duration,
                **kwargs,
            )
        )

    return _make


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    from app.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
