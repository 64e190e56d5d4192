"""
Shared fixtures and builders: an in-memory stand-in for the Redis
commands the recency cache uses, a Redis that is always down, a
throwaway SQLite database per test, stub sources and WebSocket doubles.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatch
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from newswire.models.database import Database
from newswire.models.domain import Article, Topic
from newswire.services.data_ingestion.base import (
    BaseSource,
    RawArticle,
    SourceConfig,
    SourceType,
)


class FakePipeline:
    """Buffers commands and replays them against its client on execute()."""

    def __init__(self, client):
        self.client = client
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self
        return queue

    async def execute(self):
        commands, self.commands = self.commands, []
        self.client.transactions.append([name for name, _, _ in commands])
        return [await getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in commands]


class FakeRedis:
    """Just enough of redis.asyncio.Redis for RecencyCache."""

    def __init__(self):
        self.data: dict = {}
        self.ttls: dict[str, int] = {}
        self.transactions: list[list[str]] = []

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def lpush(self, key, *values):
        items = self.data.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key, start, end):
        items = self.data.get(key, [])
        self.data[key] = items[start:end + 1]
        return True

    async def lrange(self, key, start, end):
        return list(self.data.get(key, [])[start:end + 1])

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return key in self.data

    async def set(self, key, value, ex=None):
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match="*"):
        for key in list(self.data):
            if fnmatch(key, match):
                yield key

    async def ping(self):
        return True


class BrokenRedis:
    """Every command fails as if the server were unreachable."""

    def __init__(self):
        self.transactions = []

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise RedisConnectionError("Connection refused")
        return fail

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def scan_iter(self, *args, **kwargs):
        return self._scan()

    async def _scan(self):
        raise RedisConnectionError("Connection refused")
        yield


def make_article(
    title: str = "Senate passes new budget bill",
    url: str = "https://example.com/news/budget",
    topic: Topic = Topic.POLITICS,
    source_name: str = "BBC",
    published_at: datetime = None,
    summary: str = "Lawmakers approved the spending plan late on Tuesday night.",
) -> Article:
    return Article(
        title=title,
        summary=summary,
        source_name=source_name,
        url=url,
        topic=topic,
        published_at=published_at or datetime(2024, 1, 15, 9, 0) - timedelta(minutes=1),
    )


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def broken_redis():
    return BrokenRedis()


@pytest.fixture
def open_database(tmp_path):
    """Factory for a fresh database on a temp file; use inside the test's event loop."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'newswire.db'}"

    @asynccontextmanager
    async def _open():
        database = Database(url, timeout_seconds=5)
        await database.create_tables()
        try:
            yield database
        finally:
            await database.dispose()

    return _open


PUBLISHED = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


def raw(title="Chip maker unveils faster processor", summary="x" * 30, url="https://example.com/a", **kwargs):
    return RawArticle(
        source_name=kwargs.pop("source_name", "Stub"),
        title=title,
        summary=summary,
        url=url,
        published_at=kwargs.pop("published_at", PUBLISHED),
        topic_label=kwargs.pop("topic_label", "tech"),
        **kwargs,
    )


class StubSource(BaseSource):
    """Source returning canned candidates, optionally slow or failing."""

    def __init__(self, name, articles=None, delay=0.0, error=None):
        super().__init__(SourceConfig(name=name, source_type=SourceType.RSS_FEED, endpoints={"general": name}))
        self.articles = articles or []
        self.delay = delay
        self.error = error
        self.calls = 0

    async def fetch_recent(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.articles), []

    async def fetch_endpoint(self, topic_label, target):
        return []


def fake_socket():
    """WebSocket double recording every JSON message sent to it."""
    socket = AsyncMock()
    socket.sent = []
    socket.send_json.side_effect = lambda message: socket.sent.append(message)
    return socket


def connect_all(manager, *sockets):
    async def _connect():
        for socket in sockets:
            await manager.connect(socket)
    asyncio.run(_connect())
