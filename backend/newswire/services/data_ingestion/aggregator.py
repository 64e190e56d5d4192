"""
Source Aggregator - Orchestrates data collection from all sources.

This module fetches every configured source concurrently, applies the
admission gate to each candidate, and hands back a single FetchBatch in
source order. Deduplication happens downstream in the dedup engine.
"""

import asyncio
from datetime import datetime
from typing import Optional
import logging

import httpx

from newswire.models.domain import Article
from newswire.services.data_ingestion.base import (
    BaseSource,
    FetchBatch,
    IngestionResult,
    RawArticle,
)
from newswire.services.data_ingestion.guardian import GuardianSource, create_guardian_config
from newswire.services.data_ingestion.rss import create_default_rss_sources

logger = logging.getLogger(__name__)


class SourceAggregator:
    """
    Aggregates candidates from multiple sources.

    Features:
    - Concurrent fetching from all sources
    - Per-source failure isolation
    - Bounded wait: sources still running at the deadline are cancelled
      and the batch is built from the ones that finished
    """

    def __init__(
        self,
        sources: Optional[list[BaseSource]] = None,
        rss_enabled: bool = True,
        guardian_enabled: bool = True,
        guardian_api_key: Optional[str] = None,
        guardian_base_url: str = "https://content.guardianapis.com",
        request_timeout: float = 10.0,
        entries_per_feed: int = 10,
        api_page_size: int = 10,
        fetch_deadline: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the aggregator with selected sources.

        Args:
            sources: Explicit source list (overrides the enabled flags)
            rss_enabled: Enable the RSS publishers
            guardian_enabled: Enable the Guardian search API
            guardian_api_key: API key; without it the Guardian source yields nothing
            guardian_base_url: Guardian content API root
            request_timeout: Per-request timeout for every source
            entries_per_feed: Entries taken from the head of each feed
            api_page_size: Results requested per API section
            fetch_deadline: Seconds to wait for all sources in one cycle
            http_client: Shared client for all sources (mainly for tests)
        """
        self.fetch_deadline = fetch_deadline

        if sources is not None:
            self.sources = list(sources)
        else:
            self.sources = []

            if rss_enabled:
                self.sources.extend(create_default_rss_sources(
                    timeout_seconds=request_timeout,
                    max_items_per_feed=entries_per_feed,
                    http_client=http_client,
                ))

            if guardian_enabled:
                config = create_guardian_config(
                    guardian_api_key,
                    base_url=guardian_base_url,
                    timeout_seconds=request_timeout,
                    page_size=api_page_size,
                )
                self.sources.append(GuardianSource(config, http_client=http_client))

        logger.info(f"Initialized aggregator with {len(self.sources)} sources")

    @classmethod
    def from_settings(cls, settings) -> "SourceAggregator":
        return cls(
            guardian_api_key=settings.guardian_api_key,
            guardian_base_url=settings.guardian_base_url,
            request_timeout=settings.request_timeout_seconds,
            entries_per_feed=settings.entries_per_feed,
            api_page_size=settings.api_page_size,
            fetch_deadline=settings.fetch_deadline_seconds,
        )

    async def fetch_all(self) -> FetchBatch:
        """
        Fetch candidates from all sources concurrently.

        Returns:
            FetchBatch of admitted articles (source order, then entry order)
            and one IngestionResult per source
        """
        batch = FetchBatch()
        if not self.sources:
            return batch

        tasks = [
            asyncio.create_task(self._fetch_from_source(source))
            for source in self.sources
        ]
        _, pending = await asyncio.wait(tasks, timeout=self.fetch_deadline)

        if pending:
            logger.warning(
                f"Fetch deadline of {self.fetch_deadline:.0f}s reached; "
                f"using partial results, cancelling {len(pending)} source(s)"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for source, task in zip(self.sources, tasks):
            if task in pending:
                batch.results.append(IngestionResult(
                    source_name=source.name,
                    errors=[f"timed out after {self.fetch_deadline:.0f}s"],
                ))
                continue

            exc = task.exception()
            if exc is not None:
                logger.error(f"Source {source.name} failed: {exc!r}")
                batch.results.append(IngestionResult(
                    source_name=source.name,
                    errors=[repr(exc)],
                ))
                continue

            articles, ingestion_result = task.result()
            batch.articles.extend(articles)
            batch.results.append(ingestion_result)

        for result in batch.results:
            logger.info(str(result))

        logger.info(
            f"Aggregated {len(batch.articles)} articles from {len(self.sources)} sources "
            f"({batch.rejected} rejected by admission gate)"
        )
        return batch

    async def _fetch_from_source(self, source: BaseSource) -> tuple[list[Article], IngestionResult]:
        """Fetch from a single source with timing and admission."""
        start_time = datetime.now()

        candidates, errors = await source.fetch_recent()
        admitted = self._admit(candidates)

        duration = (datetime.now() - start_time).total_seconds()
        return admitted, IngestionResult(
            source_name=source.name,
            articles_fetched=len(candidates),
            articles_accepted=len(admitted),
            articles_rejected=len(candidates) - len(admitted),
            errors=errors,
            duration_seconds=duration,
        )

    def _admit(self, candidates: list[RawArticle]) -> list[Article]:
        """Apply the admission gate, dropping invalid candidates silently."""
        return [raw.to_article() for raw in candidates if raw.is_admissible()]

    def get_source_stats(self) -> dict:
        """Get statistics about configured sources."""
        return {
            "total_sources": len(self.sources),
            "sources": [
                {
                    "name": s.name,
                    "type": s.config.source_type.value,
                    "endpoints": list(s.config.endpoints),
                }
                for s in self.sources
            ],
        }
