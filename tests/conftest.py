import os

# before app.main is imported: no exporter in tests
os.environ.setdefault("TELEMETRY_ENABLED", "false")

import pytest
import httpx

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

# Import Base + all models so metadata is complete
from app.models import Base

from app.main import app
from app.core.db import get_db
from app.api.v1.deps import get_store
from app.services.storage import AssetStore

from fixtures_seed import make_user, seed_catalog  # noqa: F401


_schema_ready = False


def _test_db_url() -> str | None:
    return os.getenv("DATABASE_URL_TEST")


@pytest.fixture
def store(tmp_path) -> AssetStore:
    return AssetStore(str(tmp_path / "uploads"))


@pytest.fixture
async def async_engine():
    global _schema_ready

    url = _test_db_url()
    if not url:
        pytest.skip("DATABASE_URL_TEST is not set (PostGIS required)")

    engine = create_async_engine(url, poolclass=NullPool)
    try:
        # Create schema once per test session
        if not _schema_ready:
            async with engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
                await conn.run_sync(Base.metadata.drop_all)
                await conn.run_sync(Base.metadata.create_all)
            _schema_ready = True
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def db_session(async_engine):
    """
    Transactional rollback per test:
    - Start an outer transaction
    - Session commits and rollbacks become SAVEPOINT release / rollback
    - The outer transaction is rolled back at the end
    """
    async with async_engine.connect() as conn:
        trans = await conn.begin()

        session_factory = async_sessionmaker(
            bind=conn,
            expire_on_commit=False,
            class_=AsyncSession,
            join_transaction_mode="create_savepoint",
        )
        session = session_factory()

        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()


@pytest.fixture
async def client(db_session: AsyncSession, store: AssetStore):
    """
    HTTP client that uses the test DB session and a tmp uploads dir via dependency overrides.
    """
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_store] = lambda: store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
