import os

# settings are read at import time
os.environ["ENABLE_RATE_LIMITING"] = "False"
os.environ["SECRET_KEY"] = "test-secret-key"

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient

from chat_service.core.utils.dependencies import get_dispatcher
from chat_service.core.utils.jwt import create_access_token
from chat_service.db.redis import get_redis
from chat_service.main import app
from chat_service.repositories.messages import MessageRepository
from chat_service.repositories.rooms import RoomRepository
from chat_service.repositories.users import UserRepository
from chat_service.schemas.auth import TokenData
from chat_service.services.notifications import NotificationDispatcher


class Clock:
    """Controllable millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1) -> int:
        self.now += ms
        return self.now


class RecordingPublisher:
    def __init__(self):
        self.published = []

    async def publish(self, channel: str, payload: dict) -> None:
        self.published.append((channel, payload))

    def on(self, channel: str):
        return [payload for name, payload in self.published if name == channel]


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis(redis_server):
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def message_repo(redis, clock):
    return MessageRepository(redis, clock=clock)


@pytest.fixture
def room_repo(redis, message_repo, clock):
    return RoomRepository(redis, message_repo, clock=clock)


@pytest.fixture
def user_repo(redis, clock):
    return UserRepository(redis, clock=clock)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def auth_headers():
    def make(user_id: str, username: str | None = None) -> dict:
        token = create_access_token(TokenData(sub=user_id, username=username or user_id.title()))
        return {"Authorization": f"Bearer {token}"}
    return make


@pytest.fixture
def api(redis, publisher):
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(publisher)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(api):
    async with AsyncClient(transport=ASGITransport(app=api), base_url="http://test") as ac:
        yield ac
