"""
Daily retention sweep.

Articles published more than ``retention_days`` ago are marked inactive.
Nothing is physically deleted.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Optional

import structlog

from newswire.config import get_settings
from newswire.models.database import Database
from newswire.models.domain import as_naive_utc, utcnow
from newswire.services.article_store import ArticleStore

logger = structlog.get_logger()


class RetentionJob:
    """Soft-deletes articles that have aged out."""

    def __init__(self, store: ArticleStore, retention_days: int = 7):
        self.store = store
        self.retention_days = retention_days

    async def run(self, now: Optional[datetime] = None) -> int:
        """Deactivate stale articles; returns how many were flipped."""
        cutoff = (as_naive_utc(now) or utcnow()) - timedelta(days=self.retention_days)
        logger.info("Starting retention sweep", cutoff=cutoff.isoformat())

        count = await self.store.deactivate_older_than(cutoff)

        logger.info("Retention sweep completed", deactivated=count)
        return count


async def run_retention_sweep(database_url: Optional[str] = None) -> int:
    """Entry point for running the sweep outside the API process."""
    settings = get_settings()
    database = Database(
        database_url or settings.database_url,
        timeout_seconds=settings.database_timeout_seconds,
    )
    await database.create_tables()

    job = RetentionJob(ArticleStore(database), settings.retention_days)
    try:
        return await job.run()
    finally:
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(run_retention_sweep())
