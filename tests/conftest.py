"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite file (aiosqlite) and its own in-memory Redis
(fakeredis), so tests never share sessions, presence or rate-limit windows.
Clients that live on an event loop are created on the loop that uses them:
the app builds its Redis client inside its lifespan through ``redis_factory``.
"""
import time

import fakeredis
import pytest
from fastapi.testclient import TestClient

from roomchat.core.config import Settings, get_settings
from roomchat.core.database import build_engine, build_session_factory, create_tables
from roomchat.core.security import create_access_token, session_key
from roomchat.main import create_app
from roomchat.models import Room, RoomMember, RoomRole, User

# Never pick up a developer's environment for tests
get_settings.cache_clear()

TEST_PASSWORD = "Secret@123"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'roomchat.db'}",
        redis_url="redis://localhost:6379/15",
        jwt_secret_key="roomchat-test-suite-signing-key-0001",
        auto_create_tables=True,
        log_level="warning",
    )


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
async def redis_client(redis_server):
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def create_user(session_factory):
    """Insert a user straight into the store."""
    async def _create(username: str, password_hash: str = "unused") -> User:
        async with session_factory() as session:
            user = User(
                first_name=username.title(),
                last_name="Tester",
                username=username,
                email=f"{username}@chatmail.io",
                password_hash=password_hash,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user
    return _create


@pytest.fixture
def create_room(session_factory):
    """Insert a room owned by ``owner`` with optional extra members."""
    async def _create(owner: User, members=(), is_private: bool = False, name: str = "General") -> Room:
        async with session_factory() as session:
            room = Room(name=name, is_private=is_private)
            session.add(room)
            await session.flush()
            session.add(RoomMember(room_id=room.id, member_id=owner.id, role=RoomRole.OWNER))
            for member in members:
                session.add(RoomMember(room_id=room.id, member_id=member.id, role=RoomRole.MEMBER))
            await session.commit()
            return room
    return _create


@pytest.fixture
def issue_token(settings, redis_client):
    """Log a user in without going through HTTP: sign a token and open its session."""
    async def _issue(user: User, remember_me: bool = False) -> str:
        last_login = int(time.time() * 1000)
        token = create_access_token(settings, str(user.id), user.email, last_login, remember_me)
        await redis_client.set(
            session_key(str(user.id), last_login),
            token,
            ex=settings.session_initial_ttl_seconds,
        )
        return token
    return _issue


@pytest.fixture
def client(settings, redis_server):
    """Test client over a fresh app, database and Redis."""
    app = create_app(
        settings,
        redis_factory=lambda: fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True),
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(client):
    """Register and log in through the API; returns id, token and auth headers."""
    def _make(username: str, remember_me: bool = False) -> dict:
        email = f"{username}@chatmail.io"
        response = client.post("/api/v1/auth/register", json={
            "firstName": username.title(),
            "lastName": "Tester",
            "username": username,
            "email": email,
            "password": TEST_PASSWORD,
        })
        assert response.status_code == 201, response.text

        response = client.post("/api/v1/auth/login", json={
            "email": email,
            "password": TEST_PASSWORD,
            "rememberMe": remember_me,
        })
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        return {
            "id": data["id"],
            "token": data["token"],
            "headers": {"Authorization": f"Bearer {data['token']}"},
        }
    return _make
