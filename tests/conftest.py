import os

# Must be set before rcms.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator

from rcms.main import app
from rcms.database import get_db, Base
from rcms.cases.schemas import CaseContent, CaseCreate, CaseRecordRead
from rcms.cases.service import CaseService
from rcms.cases.store import SQLAlchemyCaseStore

# Registers every table on Base.metadata
from rcms.cases.models import ActiveCase, CaseRecord  # noqa: F401
from rcms.audit.models import AuditEvent  # noqa: F401
from rcms.careplans.models import CarePlan  # noqa: F401

from tests.utils import RN_ID, SUPERVISOR_ID, accept_assignment


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database and session for each test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestingSessionLocal = sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with TestingSessionLocal() as session:
        yield session

    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def store(db_session: AsyncSession) -> SQLAlchemyCaseStore:
    return SQLAlchemyCaseStore(db_session)


@pytest_asyncio.fixture(scope="function")
async def case_service(db_session: AsyncSession) -> CaseService:
    return CaseService(db_session)


@pytest_asyncio.fixture(scope="function")
async def draft_case(db_session: AsyncSession, case_service: CaseService) -> CaseRecordRead:
    """A new draft whose lineage RN_ID has accepted."""
    record = await case_service.create_case(
        CaseCreate(content=CaseContent(case_type="MVA", jurisdiction="TX", client_id="client-9")),
        SUPERVISOR_ID,
    )
    await accept_assignment(db_session, record.lineage_id)
    return record


@pytest_asyncio.fixture(scope="function")
async def ready_case(case_service: CaseService, draft_case: CaseRecordRead) -> CaseRecordRead:
    return await case_service.mark_ready(draft_case.id, RN_ID)


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Client for testing API endpoints."""
    # Override the get_db dependency to use our test session
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
