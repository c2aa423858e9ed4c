"""
Shared fixtures.

Every test gets its own file-backed SQLite database (a file rather than
:memory: so concurrent sessions see the same data) and an in-memory job
queue that records what would have been sent to ARQ.
"""
import os
import tempfile

# Must be set before hookrelay.config is imported anywhere
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'hookrelay-import.db')}",
)
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hookrelay.database import get_db
from hookrelay.main import app
from hookrelay.models.base import Base
from hookrelay.models.inbound import ProcessedInboundEvent  # noqa: F401
from hookrelay.models.organisation import Organisation
from hookrelay.models.webhook import WebhookEvent
from hookrelay.services.dispatcher import WebhookDispatcher
from hookrelay.services.endpoint_service import EndpointService
from hookrelay.services.inbound_service import InboundHandlerRegistry
from hookrelay.services.job_queue import DeliveryJob


class InMemoryJobQueue:
    """JobQueue that keeps (job, delay_ms) pairs instead of talking to Redis."""

    def __init__(self):
        self.jobs: list[tuple[DeliveryJob, int]] = []

    async def enqueue(self, job: DeliveryJob, delay_ms: int = 0) -> None:
        self.jobs.append((job, delay_ms))

    def pop(self) -> tuple[DeliveryJob, int]:
        return self.jobs.pop(0)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'hookrelay.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def queue():
    return InMemoryJobQueue()


@pytest.fixture
def dispatcher(queue, session_factory):
    return WebhookDispatcher(queue, session_factory)


@pytest_asyncio.fixture
async def api(session_factory):
    """
    HTTP client against the app with the test database.

    ASGITransport does not run the lifespan, so app.state is filled here.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.inbound_handlers = InboundHandlerRegistry()
    app.state.http_client = httpx.AsyncClient(transport=httpx.MockTransport(
        lambda request: httpx.Response(200, text="received")
    ))

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    await app.state.http_client.aclose()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def org(db):
    organisation = Organisation(name="Acme Corp", domain="acme.com")
    db.add(organisation)
    await db.commit()
    return organisation


@pytest_asyncio.fixture
async def other_org(db):
    organisation = Organisation(name="Beta Inc", domain="beta.com")
    db.add(organisation)
    await db.commit()
    return organisation


@pytest_asyncio.fixture
async def endpoint(db, org):
    return await EndpointService(db).create(
        org_id=org.id,
        name="Primary",
        url="https://hooks.acme.com/in",
        events=[WebhookEvent.MEETING_ENDED.value, WebhookEvent.TRANSCRIPT_READY.value],
        headers={"X-Tenant": "acme"},
    )
