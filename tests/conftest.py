"""Shared fixtures: in-memory database, sessions, API client and fakes."""

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BOT_API_KEY", "test-api-key")
os.environ.setdefault("GITHUB_WEBHOOK_SECRET", "test-webhook-secret")

from typing import Dict, List, Optional, Tuple

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from bytehub.shared.database import Base, create_engine_for_url, get_db_session
from bytehub.web import models  # noqa: F401
from bytehub.web.dispatch import NotificationEmbed

API_KEY = os.environ["BOT_API_KEY"]
WEBHOOK_SECRET = os.environ["GITHUB_WEBHOOK_SECRET"]


@pytest.fixture
async def engine():
    engine = create_engine_for_url("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


class FakeNotifier:
    """Records notifications instead of posting them."""

    def __init__(self):
        self.threads: List[Tuple[str, str, str]] = []
        self.embeds: List[Tuple[str, NotificationEmbed]] = []
        self._next_thread = 9000

    async def create_forum_thread(self, forum_channel_id: str, name: str, content: str) -> str:
        self._next_thread += 1
        self.threads.append((forum_channel_id, name, content))
        return str(self._next_thread)

    async def send_embed(self, channel_id: str, embed: NotificationEmbed) -> None:
        self.embeds.append((channel_id, embed))

    def channels_posted(self) -> List[str]:
        return [channel_id for channel_id, _ in self.embeds]


class FakeChannels:
    """In-memory guild channel manager."""

    def __init__(self, existing: Optional[Dict[str, str]] = None):
        self.channels: Dict[str, str] = dict(existing or {})
        self.created: List[str] = []
        self._next_id = 100

    def _create(self, name: str) -> str:
        self._next_id += 1
        channel_id = str(self._next_id)
        self.channels[name] = channel_id
        self.created.append(name)
        return channel_id

    async def find_channel_by_name(self, guild_id: str, name: str) -> Optional[str]:
        for channel_name, channel_id in self.channels.items():
            if channel_name.lower() == name.lower():
                return channel_id
        return None

    async def create_forum_channel(self, guild_id: str, name: str, category_id: str) -> str:
        return self._create(name)

    async def find_or_create_category(self, guild_id: str, name: str) -> str:
        return await self.find_channel_by_name(guild_id, name) or self._create(name)

    async def find_or_create_text_channel(
        self, guild_id: str, name: str, category_id: Optional[str] = None
    ) -> str:
        return await self.find_channel_by_name(guild_id, name) or self._create(name)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def channels():
    return FakeChannels()


@pytest.fixture
async def client(session_factory, notifier):
    """API client bound to the test database and fake notifier."""
    from bytehub.web.api.app import api

    async def override_get_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    api.dependency_overrides[get_db_session] = override_get_db_session
    api.state.notifier = notifier

    transport = httpx.ASGITransport(app=api)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    api.dependency_overrides.clear()
    api.state.notifier = None


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_KEY}"}
