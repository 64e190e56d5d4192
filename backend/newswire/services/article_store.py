"""
Cache-aside article store.

The database is the source of truth. New articles are written to the
database first and only then pushed into the recency cache; reads of the
"latest" and per-topic lists try the cache and fall back to the database.
Search always goes to the database since the cache is not content-indexed.
"""
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from newswire.models.database import Database
from newswire.models.domain import Article, Topic, utcnow
from newswire.services.cache import LATEST_SCOPE, RecencyCache, topic_scope
from newswire.services.data_ingestion.dedup import compute_exact_key
from newswire.services.repository import ArticleFilter, ArticleRepository

logger = structlog.get_logger(__name__)


class StoreUnavailableError(RuntimeError):
    """The database connection could not be acquired."""


class ArticleStore:
    """Persistence gateway shared by the ingestion cycle and the query API."""

    def __init__(self, database: Database, cache: Optional[RecencyCache] = None):
        self.database = database
        self.cache = cache

    # =========================================================================
    # Writes
    # =========================================================================

    async def save_articles(self, articles: list[Article]) -> list[Article]:
        """
        Insert every article whose URL and fingerprint are both unseen.

        Returns the newly stored articles in input order. Items that
        already exist, or that fail individually, are skipped.

        Raises:
            StoreUnavailableError: if no database connection can be acquired
        """
        saved: list[Article] = []

        async with self.database.async_session() as session:
            try:
                await session.connection()
            except SQLAlchemyError as e:
                raise StoreUnavailableError(f"Database unavailable: {e}") from e

            repo = ArticleRepository(session)
            for article in articles:
                exact_key = article.exact_key or compute_exact_key(article.title, article.url)
                candidate = article.model_copy(update={"exact_key": exact_key})

                try:
                    existing = await repo.find_by_natural_keys(candidate.url, exact_key)
                    if existing is not None:
                        continue
                    stored = await repo.insert(candidate)
                except IntegrityError:
                    # Lost a race on a natural key; the row already exists
                    await session.rollback()
                    logger.debug("Article already stored", url=candidate.url)
                    continue
                except SQLAlchemyError as e:
                    await session.rollback()
                    logger.error("Error saving article", url=candidate.url, error=str(e))
                    continue

                saved.append(stored)
                if self.cache is not None:
                    await self.cache.remember(stored)

        logger.info("Articles stored", candidates=len(articles), saved=len(saved))
        return saved

    async def deactivate(self, article_id: str) -> Optional[Article]:
        """Soft-delete one article and evict it from the cache."""
        async with self.database.async_session() as session:
            article = await ArticleRepository(session).set_active(article_id, False)

        if article is not None and self.cache is not None:
            await self.cache.forget(article_id)
        return article

    async def deactivate_older_than(self, cutoff: datetime) -> int:
        """Mark every active article published before ``cutoff`` inactive and evict it."""
        stale = ArticleFilter(active=True, published_before=cutoff)
        async with self.database.async_session() as session:
            repo = ArticleRepository(session)
            article_ids = await repo.find_ids(stale)
            if not article_ids:
                return 0
            count = await repo.bulk_update_active(stale, False)

        if self.cache is not None:
            for article_id in article_ids:
                await self.cache.forget(article_id)
        return count

    async def clear_cache(self) -> bool:
        if self.cache is None:
            return False
        return await self.cache.clear_all()

    # =========================================================================
    # Reads
    # =========================================================================

    async def latest(self, limit: int = 20, offset: int = 0) -> list[Article]:
        """Newest articles; cache first, database on miss."""
        return await self._recent(LATEST_SCOPE, ArticleFilter(), limit, offset)

    async def by_topic(self, topic: Topic, limit: int = 20, offset: int = 0) -> list[Article]:
        """Newest articles in one topic; cache first, database on miss."""
        return await self._recent(topic_scope(topic), ArticleFilter(topic=topic), limit, offset)

    async def search(self, query: str, limit: int = 20, offset: int = 0) -> list[Article]:
        """Case-insensitive substring search over title and summary."""
        async with self.database.async_session() as session:
            return await ArticleRepository(session).find_ordered(
                ArticleFilter(query=query), limit=limit, offset=offset
            )

    async def stats(self) -> dict:
        """Active totals and breakdowns for the admin API."""
        active = ArticleFilter()
        async with self.database.async_session() as session:
            repo = ArticleRepository(session)
            return {
                "total_active": await repo.count(active),
                "last_24h": await repo.count(
                    ArticleFilter(created_after=utcnow() - timedelta(hours=24))
                ),
                "by_topic": await repo.count_by("topic", active),
                "by_source": await repo.count_by("source_name", active),
            }

    async def _recent(
        self,
        scope: str,
        article_filter: ArticleFilter,
        limit: int,
        offset: int,
    ) -> list[Article]:
        if self.cache is not None:
            cached = await self.cache.get_recent(scope, offset, limit)
            if cached:
                return cached

        async with self.database.async_session() as session:
            return await ArticleRepository(session).find_ordered(
                article_filter, limit=limit, offset=offset
            )
