import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.services.quiz_session import QuizSessionManager
from app.services.realtime import RoomEventBus
from app.services.syllabus import SyllabusGenerator
from tests.helpers import FakeOpenAI, make_syllabus_payload, tool_call_response


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_ai():
    return FakeOpenAI(tool_call_response(make_syllabus_payload()))


@pytest_asyncio.fixture
async def client(session_factory, fake_ai):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    bus = RoomEventBus()
    manager = QuizSessionManager(session_factory, bus)
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = session_factory
    app.state.event_bus = bus
    app.state.quiz_manager = manager
    app.state.syllabus_generator = SyllabusGenerator(fake_ai, "test-model")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    await manager.shutdown()
    app.dependency_overrides.clear()


async def register(client: AsyncClient, name: str) -> dict:
    """Register a user and return bearer headers for them."""
    response = await client.post(
        "/api/auth/register",
        json={"email": f"{name}@example.com", "password": "correct-horse", "username": name},
    )
    assert response.status_code == 201, response.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def register_user():
    return register
