"""
Ingestion cycle job.

One cycle runs the pipeline end to end:
1. Fetch candidates from all sources concurrently (bounded by a deadline)
2. Drop exact and near duplicates within the batch
3. Store the survivors that are not already known
4. Announce the newly stored articles to connected clients

Failures are contained at the narrowest scope. Only an unreachable store
or a cycle in which every source failed is recorded as a cycle error.
"""
import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from newswire.config import get_settings
from newswire.models.database import Database
from newswire.models.domain import utcnow
from newswire.services.article_store import ArticleStore, StoreUnavailableError
from newswire.services.data_ingestion.aggregator import SourceAggregator
from newswire.services.data_ingestion.dedup import DedupEngine
from newswire.services.fanout import FanoutPublisher

logger = structlog.get_logger()


@dataclass
class CycleStats:
    """Outcome of one ingestion cycle."""
    started_at: datetime = field(default_factory=utcnow)
    fetched: int = 0
    rejected: int = 0
    exact_duplicates: int = 0
    near_duplicates: int = 0
    persisted: int = 0
    published: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["success"] = self.success
        return data


class IngestionCycleJob:
    """Runs fetch, dedup, persist and publish for a single cycle."""

    def __init__(
        self,
        aggregator: SourceAggregator,
        dedup_engine: DedupEngine,
        store: ArticleStore,
        publisher: Optional[FanoutPublisher] = None,
    ):
        self.aggregator = aggregator
        self.dedup_engine = dedup_engine
        self.store = store
        self.publisher = publisher

    async def run(self) -> CycleStats:
        stats = CycleStats()
        logger.info("Starting ingestion cycle", start_time=stats.started_at.isoformat())

        # Stage 1: Fetch
        batch = await self.aggregator.fetch_all()
        stats.fetched = len(batch.articles)
        stats.rejected = batch.rejected
        if batch.all_sources_failed:
            stats.errors.append("all sources failed")
            logger.error(
                "All sources failed",
                sources=[r.source_name for r in batch.results],
            )

        # Stage 2: Dedup
        deduped = self.dedup_engine.deduplicate(batch.articles)
        stats.exact_duplicates = deduped.exact_duplicates
        stats.near_duplicates = deduped.near_duplicates

        # Stage 3: Persist
        saved = []
        if deduped.articles:
            try:
                saved = await self.store.save_articles(deduped.articles)
            except StoreUnavailableError as e:
                stats.errors.append(str(e))
                logger.error("Store unavailable, skipping persistence", error=str(e))
        stats.persisted = len(saved)

        # Stage 4: Publish
        if saved and self.publisher is not None:
            await self.publisher.publish(saved)
            stats.published = len(saved)

        stats.duration_seconds = (utcnow() - stats.started_at).total_seconds()
        log = logger.info if stats.success else logger.warning
        log("Ingestion cycle completed", stats=stats.to_dict())
        return stats


async def run_ingestion_cycle(database_url: Optional[str] = None) -> CycleStats:
    """Entry point for running one cycle outside the API process."""
    settings = get_settings()
    database = Database(
        database_url or settings.database_url,
        timeout_seconds=settings.database_timeout_seconds,
    )
    await database.create_tables()

    job = IngestionCycleJob(
        aggregator=SourceAggregator.from_settings(settings),
        dedup_engine=DedupEngine(settings.similarity_threshold),
        store=ArticleStore(database),
    )
    try:
        return await job.run()
    finally:
        await database.dispose()


if __name__ == "__main__":
    # Run one cycle directly, without cache or fanout
    asyncio.run(run_ingestion_cycle())
