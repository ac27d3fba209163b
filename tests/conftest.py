"""Shared test fixtures."""
import itertools
import pytest
from datetime import datetime
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from uuid import uuid4

from brokerdesk.db.base_class import Base
import brokerdesk.models  # noqa: F401  registers every table on Base.metadata
from brokerdesk.crud import agent as crud_agent
from brokerdesk.crud import calls as crud_calls
from brokerdesk.crud import lead as crud_lead
from brokerdesk.crud import load as crud_load
from brokerdesk.models.enums import AgentRole

_counter = itertools.count(1)


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with schema created. One connection shared by all sessions."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(db_engine):
    """AsyncSession configured like the application's session factory."""
    factory = async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def agency_id():
    return uuid4()


@pytest.fixture
def make_agent(db, agency_id):
    """Factory fixture: committed Agent rows."""
    async def _make(role=AgentRole.AGENT, timezone=None, agency=None, **fields):
        n = next(_counter)
        agent = await crud_agent.create_agent(
            db,
            agency_id=agency or agency_id,
            full_name=fields.pop("full_name", f"Agent {n}"),
            email=fields.pop("email", f"agent{n}@example.com"),
            role=role,
            timezone=timezone,
        )
        await db.commit()
        return agent
    return _make


@pytest.fixture
async def agent(make_agent):
    return await make_agent(timezone="America/Chicago")


@pytest.fixture
async def other_agent(make_agent):
    return await make_agent(timezone="America/Chicago")


@pytest.fixture
async def admin(make_agent):
    return await make_agent(role=AgentRole.ADMIN, timezone="America/Chicago")


@pytest.fixture
def make_lead(db, agency_id):
    """Factory fixture: committed pending Lead rows."""
    async def _make(**fields):
        lead = await crud_lead.create_lead(
            db,
            agency_id=fields.pop("agency_id", agency_id),
            caller_phone=fields.pop("caller_phone", f"+1555000{next(_counter):04d}"),
            **fields,
        )
        await db.commit()
        return lead
    return _make


@pytest.fixture
def make_load(db, agency_id):
    """Factory fixture: committed open Load rows with a Dallas -> Atlanta lane."""
    async def _make(**fields):
        defaults = dict(
            pickup_city="Dallas",
            pickup_state="TX",
            dest_city="Atlanta",
            dest_state="GA",
            trailer_type="Dry Van",
            commodity="Paper Products",
        )
        defaults.update(fields)
        load = await crud_load.create_load(
            db,
            agency_id=defaults.pop("agency_id", agency_id),
            load_number=defaults.pop("load_number", f"LD-{next(_counter):05d}"),
            **defaults,
        )
        await db.commit()
        return load
    return _make


@pytest.fixture
def make_call(db, agency_id):
    """Factory fixture: committed Call rows (started now unless given)."""
    async def _make(**fields):
        fields.setdefault("started_at", datetime.utcnow())
        call = await crud_calls.create_call(db, agency_id=fields.pop("agency_id", agency_id), **fields)
        await db.commit()
        return call
    return _make


@pytest.fixture
def mock_redis():
    """Mock async Redis client: empty cache, accepts writes."""
    mock = AsyncMock()
    mock.get.return_value = None
    mock.set.return_value = True
    return mock
