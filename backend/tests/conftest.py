"""
VB100 Results - Test Configuration and Fixtures
"""
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from faker import Faker

# Set testing environment before the app reads its settings
_TEST_DIR = Path(tempfile.mkdtemp(prefix="vb100-tests-"))
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = f'sqlite+aiosqlite:///{_TEST_DIR / "app.db"}'
os.environ['LOG_FILE'] = ''
os.environ['DEFAULT_TEST_SET_NAME'] = 'VB100 Certification'
os.environ['DEFAULT_CLEAN_SAMPLE_SIZE'] = '100000'

from vb100.main import app
from vb100.client.results_client import ResultsClient
from vb100.core.database import Base, build_engine, get_db
from vb100.services.result_store import ResultStore

fake = Faker()


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory bound to a fresh SQLite file database per test"""
    engine = build_engine(f'sqlite+aiosqlite:///{tmp_path / "test.db"}')
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(db_session: AsyncSession) -> ResultStore:
    return ResultStore(db_session)


@pytest.fixture
async def client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def results_client(client: AsyncClient) -> AsyncGenerator[ResultsClient, None]:
    """ResultsClient talking to the app in-process"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test/api/v1') as http:
        yield ResultsClient(client=http)


@pytest.fixture
def product_row() -> dict:
    """A realistic row payload (camelCase, as the UI sends it)"""
    return {
        'productId': fake.bothify(text='??##').upper(),
        'productName': fake.company(),
        'vmName': f'Win11-{fake.random_int(1, 9)}',
        'stage': 'final',
        'certMiss': 120,
        'fps': 0,
    }
