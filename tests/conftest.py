import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from fieldops.config import Settings
from fieldops.database import Base
from fieldops.main import app
from fieldops.services.blob_store import MemoryBlobStore
from fieldops.services.container import build_services
from fieldops.services.persisted_store import MemoryStateStorage
from fieldops.services.subscriptions import SubscriptionHub
from fieldops.services.ticket_repository import TicketRepository
import fieldops.models  # noqa: F401
from tests.factories import TicketCreateFactory


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing every local path into the test's temp dir."""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        BLOB_BACKEND="memory",
        BLOB_LOCAL_ROOT=str(tmp_path / "blobs"),
        STATE_DIR=str(tmp_path / "state"),
        EXPORT_DIR=str(tmp_path / "exports"),
        QBO_COMPANY_ID="9130350000000000",
        DEFAULT_INSPECTOR_NAME="Test Inspector",
        ENVIRONMENT="test",
        DEBUG=False,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Per-test SQLite database with all tables."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def hub() -> SubscriptionHub:
    return SubscriptionHub()


@pytest.fixture
def repository(session_factory, hub) -> TicketRepository:
    return TicketRepository(session_factory, hub=hub)


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore(bucket="test-bucket", chunk_size=4)


@pytest.fixture
def state_storage() -> MemoryStateStorage:
    return MemoryStateStorage()


@pytest_asyncio.fixture
async def services(test_settings, session_factory, blob_store, state_storage):
    """Fully wired service container over the test database."""
    container = build_services(
        test_settings,
        session_factory,
        blob_store=blob_store,
        state_storage=state_storage,
    )
    yield container
    await container.aclose()


@pytest_asyncio.fixture
async def client(services):
    """Test client bound to the test service container."""
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.services


@pytest.fixture
def ticket_data():
    """Minimal valid ticket creation payload."""
    return TicketCreateFactory()
