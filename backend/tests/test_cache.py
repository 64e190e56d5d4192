"""
Tests for the Redis recency cache.
"""

import asyncio

from conftest import make_article

from newswire.models.domain import Topic
from newswire.services.cache import LATEST_SCOPE, RecencyCache, topic_scope


def stored(index: int, topic: Topic = Topic.POLITICS):
    return make_article(
        title=f"Story number {index} about the economy",
        url=f"https://example.com/{index}",
        topic=topic,
    ).model_copy(update={"id": f"id{index}"})


class TestRecencyCache:
    """Tests for the recency cache over a fake Redis."""

    def test_remember_pushes_latest_and_topic(self, fake_redis):
        cache = RecencyCache(fake_redis, ttl_seconds=3600)

        async def scenario():
            await cache.remember(stored(1, Topic.TECHNOLOGY))
            await cache.remember(stored(2, Topic.POLITICS))
            return (
                await cache.get_recent_ids(LATEST_SCOPE, 0, 10),
                await cache.get_recent(topic_scope(Topic.TECHNOLOGY), 0, 10),
            )

        latest_ids, tech = asyncio.run(scenario())

        assert latest_ids == ["id2", "id1"]
        assert [a.id for a in tech] == ["id1"]
        assert fake_redis.ttls["news:item:id1"] == 3600
        assert fake_redis.ttls["news:latest"] == 3600

    def test_lists_are_bounded(self, fake_redis):
        cache = RecencyCache(fake_redis, max_items=3)

        async def scenario():
            for i in range(5):
                await cache.push_recent(LATEST_SCOPE, f"id{i}")
            return await cache.get_recent_ids(LATEST_SCOPE, 0, 10)

        assert asyncio.run(scenario()) == ["id4", "id3", "id2"]

    def test_push_recent_is_one_transaction(self, fake_redis):
        """Push, trim and expiry go out together so a list is never left untrimmed or without TTL."""
        cache = RecencyCache(fake_redis, ttl_seconds=60)

        asyncio.run(cache.push_recent(LATEST_SCOPE, "id1"))

        assert fake_redis.transactions == [["lpush", "ltrim", "expire"]]
        assert fake_redis.ttls["news:latest"] == 60

    def test_offset_paging(self, fake_redis):
        cache = RecencyCache(fake_redis)

        async def scenario():
            for i in range(5):
                await cache.push_recent(LATEST_SCOPE, f"id{i}")
            return await cache.get_recent_ids(LATEST_SCOPE, 1, 2)

        assert asyncio.run(scenario()) == ["id3", "id2"]

    def test_forgotten_and_inactive_articles_skipped(self, fake_redis):
        cache = RecencyCache(fake_redis)

        async def scenario():
            await cache.remember(stored(1))
            await cache.remember(stored(2).model_copy(update={"active": False}))
            await cache.remember(stored(3))
            await cache.forget("id3")
            return await cache.get_recent(LATEST_SCOPE, 0, 10)

        assert [a.id for a in asyncio.run(scenario())] == ["id1"]

    def test_clear_all(self, fake_redis):
        cache = RecencyCache(fake_redis)
        fake_redis.data["other:key"] = "kept"

        async def scenario():
            await cache.remember(stored(1))
            return await cache.clear_all()

        assert asyncio.run(scenario()) is True
        assert list(fake_redis.data) == ["other:key"]

    def test_unavailable_redis_degrades(self, broken_redis):
        """Every operation swallows Redis errors and returns a safe default."""
        cache = RecencyCache(broken_redis)

        async def scenario():
            await cache.remember(stored(1))
            await cache.forget("id1")
            return (
                await cache.get_recent(LATEST_SCOPE, 0, 10),
                await cache.get_by_id("id1"),
                await cache.clear_all(),
                await cache.ping(),
            )

        assert asyncio.run(scenario()) == ([], None, False, False)
