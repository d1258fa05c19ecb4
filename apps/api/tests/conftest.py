from typing import Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import create_app
from routers import rate_limit
from services import credits


@pytest.fixture(autouse=True)
def reset_process_state():
    """Keep in-memory rate-limit counters and ledger locks isolated between tests."""
    rate_limit.reset_local_counters()
    credits._account_locks.clear()
    yield
    rate_limit.reset_local_counters()
    credits._account_locks.clear()


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "profile_credits.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker

    await engine.dispose()


@pytest_asyncio.fixture
async def client_factory(session_maker):
    """Build API clients bound to the test database, one app per auth strategy."""
    apps: Dict[str, object] = {}
    clients = []

    async def override_get_db():
        async with session_maker() as session:
            yield session

    def _make(strategy: str = "session") -> AsyncClient:
        api = apps.get(strategy)
        if api is None:
            api = create_app(strategy)
            api.state.disable_rate_limits = True
            api.dependency_overrides[get_db] = override_get_db
            apps[strategy] = api
        client = AsyncClient(transport=ASGITransport(app=api), base_url="http://test")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()


async def _register_account(client: AsyncClient, email: str, password: str = "correct-horse", **extra) -> dict:
    response = await client.post("/api/register", json={"email": email, "password": password, **extra})
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def register_account():
    return _register_account
