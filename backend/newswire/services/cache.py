"""
Redis-backed recency cache.

Keeps, for the "latest" scope and for every topic scope, a bounded list
of the most recently inserted article ids, plus each article's JSON under
its id. Everything expires after the configured TTL. The cache is a
projection of the database: flushing it loses nothing.

Redis failures never reach callers; reads return empty results so the
store gateway falls back to the database.
"""
from typing import Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from newswire.models.domain import Article, Topic

logger = structlog.get_logger(__name__)

LATEST_SCOPE = "latest"


def topic_scope(topic: Topic) -> str:
    return f"topic:{Topic(topic).value}"


class RecencyCache:
    """Bounded, TTL-governed id lists plus an article lookup."""

    def __init__(
        self,
        redis: Redis,
        ttl_seconds: int = 3600,
        max_items: int = 100,
        key_prefix: str = "news",
    ):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.max_items = max_items
        self.key_prefix = key_prefix

    def _list_key(self, scope: str) -> str:
        return f"{self.key_prefix}:{scope}"

    def _item_key(self, article_id: str) -> str:
        return f"{self.key_prefix}:item:{article_id}"

    async def push_recent(self, scope: str, article_id: str) -> None:
        """Prepend an id to a scope list, trim to the bound and refresh its TTL."""
        key = self._list_key(scope)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lpush(key, article_id)
                pipe.ltrim(key, 0, self.max_items - 1)
                pipe.expire(key, self.ttl_seconds)
                await pipe.execute()
        except RedisError as e:
            logger.warning("Recency cache write failed", scope=scope, error=str(e))

    async def remember(self, article: Article) -> None:
        """Cache a freshly inserted article and push it onto its scopes."""
        try:
            await self.redis.set(
                self._item_key(article.id),
                article.model_dump_json(),
                ex=self.ttl_seconds,
            )
        except RedisError as e:
            logger.warning("Recency cache write failed", article_id=article.id, error=str(e))
            return

        await self.push_recent(LATEST_SCOPE, article.id)
        await self.push_recent(topic_scope(article.topic), article.id)

    async def get_recent_ids(self, scope: str, offset: int, count: int) -> list[str]:
        if count <= 0:
            return []
        try:
            ids = await self.redis.lrange(self._list_key(scope), offset, offset + count - 1)
        except RedisError as e:
            logger.warning("Recency cache read failed", scope=scope, error=str(e))
            return []
        return [i.decode() if isinstance(i, bytes) else i for i in ids]

    async def get_by_id(self, article_id: str) -> Optional[Article]:
        try:
            cached = await self.redis.get(self._item_key(article_id))
        except RedisError as e:
            logger.warning("Recency cache read failed", article_id=article_id, error=str(e))
            return None
        if cached is None:
            return None
        return Article.model_validate_json(cached)

    async def get_recent(self, scope: str, offset: int, count: int) -> list[Article]:
        """Cached articles for a scope; empty when the scope is cold or expired."""
        articles = []
        for article_id in await self.get_recent_ids(scope, offset, count):
            article = await self.get_by_id(article_id)
            if article is not None and article.active:
                articles.append(article)
        return articles

    async def forget(self, article_id: str) -> None:
        """Evict one article; its id lingers in scope lists but no longer resolves."""
        try:
            await self.redis.delete(self._item_key(article_id))
        except RedisError as e:
            logger.warning("Recency cache evict failed", article_id=article_id, error=str(e))

    async def clear_all(self) -> bool:
        """Drop every key under this cache's prefix."""
        try:
            keys = [key async for key in self.redis.scan_iter(match=f"{self.key_prefix}:*")]
            if keys:
                await self.redis.delete(*keys)
        except RedisError as e:
            logger.warning("Recency cache clear failed", error=str(e))
            return False
        logger.info("Recency cache cleared", keys=len(keys))
        return True

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError:
            return False


def create_redis(url: str, timeout_seconds: float = 5.0) -> Redis:
    """Redis client with bounded socket timeouts."""
    return Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=timeout_seconds,
        socket_connect_timeout=timeout_seconds,
    )
