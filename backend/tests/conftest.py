import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from myousic.api import deps
from myousic.api.main import app
from myousic.core.catalog import CatalogStore
from myousic.core.config import settings
# Import all models to ensure Base.metadata is populated
from myousic.core import models  # noqa
from myousic.core.models import Base
from myousic.core.scan_state import scan_state

# Use in-memory DB for better isolation and speed
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def db_engine():
    """Fresh in-memory database per test (NEVER the production engine)."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_factory):
    """Provide a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def store(db_session):
    return CatalogStore(db_session)


@pytest.fixture(autouse=True)
def reset_global_state():
    """The scan job and API services are process-wide; isolate each test."""
    scan_state.reset()
    deps._services.clear()
    yield
    scan_state.reset()
    deps._services.clear()


@pytest.fixture(scope="function")
def data_dir(tmp_path, monkeypatch):
    """Point DATA_DIR (and so the covers directory) at a temp dir."""
    monkeypatch.setattr(settings, "DATA_DIR", tmp_path)
    return tmp_path


@pytest.fixture(scope="function")
async def client(session_factory, data_dir):
    """Create an async test client with DB override."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def async_client(client):
    return client
