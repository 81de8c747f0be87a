import certifi
from beanie import init_beanie
from pymongo import AsyncMongoClient

from app.core.config import get_settings
from app.db.documents import (
    CreditTransactionDocument,
    FailedJobDocument,
    LedgerLockDocument,
    UserDocument,
    WorkoutDocument,
)

DOCUMENT_MODELS = [
    UserDocument,
    WorkoutDocument,
    CreditTransactionDocument,
    LedgerLockDocument,
    FailedJobDocument,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def create_client(uri: str | None = None) -> AsyncMongoClient:
    settings = get_settings()
    uri = uri or settings.mongodb_uri
    # every ledger call is a store round trip; keep them bounded
    kwargs = {
        "serverSelectionTimeoutMS": settings.mongodb_timeout_ms,
        "connectTimeoutMS": settings.mongodb_timeout_ms,
        "socketTimeoutMS": settings.mongodb_timeout_ms,
        "tz_aware": False,
    }
    if _use_tls(uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    return AsyncMongoClient(uri, **kwargs)


async def init_db(uri: str | None = None, db_name: str | None = None) -> AsyncMongoClient:
    client = create_client(uri)
    database = client[db_name or get_settings().mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    return client
