# tests/conftest.py — Shared test fixtures
import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User, Friend, FriendStatus
from auth import AuthService
from activity_log import RequestContext
from database import get_db_session, configure_sqlite
from main import app
import moves


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory):
    """HTTP test client with overridden DB dependency"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def ctx():
    return RequestContext(ip="127.0.0.1", user_agent="pytest", request_id="test-request")


async def make_user(db_session, email: str, display_name: str) -> User:
    user = User(
        email=email,
        display_name=display_name,
        password_hash=AuthService.hash_password("TestPassword123!"),
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    # end the read transaction refresh opened; SQLite writers block on it
    await db_session.commit()
    return user


async def make_friends(db_session, a: User, b: User, status: FriendStatus = FriendStatus.ACCEPTED) -> Friend:
    friendship = Friend(requester_id=a.id, addressee_id=b.id, status=status)
    db_session.add(friendship)
    await db_session.commit()
    await db_session.refresh(friendship)
    await db_session.commit()
    return friendship


@pytest_asyncio.fixture
async def alice(db_session):
    """Board owner"""
    return await make_user(db_session, "alice@taskboard.dev", "Alice")


@pytest_asyncio.fixture
async def bob(db_session):
    return await make_user(db_session, "bob@taskboard.dev", "Bob")


@pytest_asyncio.fixture
async def carol(db_session):
    """Not a member of anything"""
    return await make_user(db_session, "carol@taskboard.dev", "Carol")


@pytest_asyncio.fixture
async def board(db_session, alice):
    """Alice's board with the default To Do / Doing / Done columns"""
    created, _ = await moves.create_board(db_session, alice.id, "Sprint", RequestContext.empty())
    return created


@pytest_asyncio.fixture
async def columns(db_session, board):
    """Default columns ordered by position"""
    from ordering import column_scope, load_siblings
    rows = await load_siblings(db_session, column_scope(board.id))
    await db_session.commit()
    return rows


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.token_for_user(user)
    return {"Authorization": f"Bearer {token}"}
