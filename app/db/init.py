from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession

from app.core.config import get_settings
from app.db.documents import DOCUMENT_MODELS

_client: AsyncIOMotorClient | None = None

T = TypeVar("T")


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db() -> None:
    global _client
    settings = get_settings()
    kwargs = {}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    _client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    database = _client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)


def get_client() -> AsyncIOMotorClient:
    if _client is None:
        raise RuntimeError("init_db() has not been awaited")
    return _client


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncIOMotorClientSession]:
    """Multi-document transaction; commits on exit, aborts on any exception. Needs a replica set."""
    async with await get_client().start_session() as session:
        async with session.start_transaction():
            yield session


async def run_transaction(callback: Callable[[AsyncIOMotorClientSession], Awaitable[T]]) -> T:
    """Run callback(session) in a transaction, retried by the driver on transient write conflicts."""
    async with await get_client().start_session() as session:
        return await session.with_transaction(callback)
