import itertools
import os
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-memory backend; no MongoDB needed for the suite
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "whsec_test")

from app.core.config import Settings  # noqa: E402
from app.core.security import create_session_cookie  # noqa: E402
from app.deps import SESSION_COOKIE_NAME, Services, build_services  # noqa: E402
from app.models.enums import HostVerificationStatus, TransactionKind  # noqa: E402
from app.models.user import User  # noqa: E402
from app.stores.memory import MemoryStore  # noqa: E402

_phones = itertools.count(9000000000)


class FakeOrders:
    def __init__(self) -> None:
        self.created: list[dict] = []
        self._ids = itertools.count(1)

    def create(self, data: dict) -> dict:
        order = {"id": f"order_test{next(self._ids)}", "amount": data["amount"], "currency": data["currency"]}
        self.created.append(data)
        return order


@pytest.fixture
def razorpay_client():
    return SimpleNamespace(order=FakeOrders())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        store_backend="memory",
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret="rzp_test_secret",
        razorpay_webhook_secret="whsec_test",
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def services(store, settings, razorpay_client) -> Services:
    return build_services(store, settings, razorpay_client=razorpay_client)


@pytest.fixture
def make_user(store, services):
    """Insert a user; starting coins go through the ledger."""

    async def _make(coins: int = 0, **fields) -> User:
        user = User(phone_number=str(next(_phones)), **fields)
        await store.insert_user(user)
        if coins:
            await services.wallet.credit(user.id, coins, TransactionKind.ADMIN, "Test funding")
        return await store.get_user(user.id)

    return _make


@pytest.fixture
def make_host(make_user):
    async def _make(**fields) -> User:
        return await make_user(is_host=True, host_verification_status=HostVerificationStatus.APPROVED, **fields)

    return _make


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    from app.main import app

    app.state.services = services
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.state.services = None


@pytest.fixture
def login(client):
    """Authenticate the test client as `user` with a signed session cookie."""

    def _login(user: User) -> None:
        cookie = create_session_cookie({"user_id": user.id, "session_version": user.session_version})
        client.headers["Cookie"] = f"{SESSION_COOKIE_NAME}={cookie}"

    return _login
