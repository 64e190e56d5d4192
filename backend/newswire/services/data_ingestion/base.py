"""
Base classes and data models for data ingestion.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from html import unescape
from typing import AsyncIterator, Optional
import logging
import re

import httpx

from newswire.models.domain import Article, as_naive_utc, map_topic

logger = logging.getLogger(__name__)

# Admission gates: a candidate needs strictly longer text than these
MIN_TITLE_LENGTH = 10
MIN_SUMMARY_LENGTH = 20

USER_AGENT = "Newswire/0.1 (news aggregator)"


def clean_html(html: Optional[str]) -> str:
    """Strip HTML tags and entities, collapsing whitespace."""
    if not html:
        return ""

    clean = re.sub(r"<[^>]+>", " ", html)
    clean = unescape(clean)
    return " ".join(clean.split())


class SourceType(str, Enum):
    """Type of content source."""
    RSS_FEED = "rss_feed"
    SEARCH_API = "search_api"


@dataclass
class SourceConfig:
    """Configuration for a data source."""
    name: str
    source_type: SourceType
    base_url: str = ""
    # Topic label -> feed URL (RSS) or section name (search API)
    endpoints: dict[str, str] = field(default_factory=dict)
    api_key: Optional[str] = None
    timeout_seconds: float = 10.0
    max_items_per_endpoint: int = 10
    enabled: bool = True


@dataclass
class RawArticle:
    """
    Raw article data from a source before admission.

    This is the intermediate format between source-specific data
    and our normalized Article model. Any field may be missing.
    """
    source_name: str
    title: Optional[str] = None
    summary: Optional[str] = None
    url: Optional[str] = None
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None
    topic_label: Optional[str] = None

    def is_admissible(self) -> bool:
        """Presence and length gates applied before fingerprinting."""
        return bool(
            self.title
            and self.summary
            and self.source_name
            and self.url
            and self.published_at
            and len(self.title) > MIN_TITLE_LENGTH
            and len(self.summary) > MIN_SUMMARY_LENGTH
        )

    def to_article(self) -> Article:
        return Article(
            title=self.title,
            summary=self.summary,
            source_name=self.source_name,
            url=self.url,
            image_url=self.image_url,
            topic=map_topic(self.topic_label),
            published_at=as_naive_utc(self.published_at),
        )


@dataclass
class IngestionResult:
    """Result of fetching one source during a cycle."""
    source_name: str
    articles_fetched: int = 0
    articles_accepted: int = 0
    articles_rejected: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def __str__(self) -> str:
        status = "ok" if self.success else "failed"
        return (
            f"[{status}] {self.source_name}: "
            f"fetched={self.articles_fetched}, accepted={self.articles_accepted}, "
            f"rejected={self.articles_rejected}, "
            f"errors={len(self.errors)}, time={self.duration_seconds:.1f}s"
        )


@dataclass
class FetchBatch:
    """All admitted candidates from one cycle, in arrival order."""
    articles: list[Article] = field(default_factory=list)
    results: list[IngestionResult] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return sum(r.articles_rejected for r in self.results)

    @property
    def all_sources_failed(self) -> bool:
        """True when some source errored and no source delivered anything."""
        failed = any(not r.success for r in self.results)
        delivered = any(r.articles_fetched > 0 for r in self.results)
        return failed and not delivered


class BaseSource(ABC):
    """
    Abstract base class for data sources.

    Each source implementation handles:
    - Fetching one endpoint (feed URL or API section) per topic label
    - Parsing source-specific data format
    - Mapping to RawArticle candidates

    Endpoints are fetched concurrently; a failing endpoint is logged
    and recorded but never fails the whole source.
    """

    def __init__(self, config: SourceConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.name = config.name
        self._http_client = http_client

    @asynccontextmanager
    async def http(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the injected client, or a short-lived one with the source timeout."""
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            yield client

    async def fetch_recent(self) -> tuple[list[RawArticle], list[str]]:
        """
        Fetch candidates from every configured endpoint.

        Returns:
            Tuple of (candidates in endpoint order, per-endpoint error messages)
        """
        endpoints = list(self.config.endpoints.items())
        if not endpoints:
            return [], []

        tasks = [self.fetch_endpoint(label, target) for label, target in endpoints]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        articles: list[RawArticle] = []
        errors: list[str] = []
        for (label, target), result in zip(endpoints, results):
            if isinstance(result, Exception):
                logger.warning(f"{self.name} [{label}] fetch error: {result!r}")
                errors.append(f"{label}: {result!r}")
                continue
            articles.extend(result)

        return articles, errors

    @abstractmethod
    async def fetch_endpoint(self, topic_label: str, target: str) -> list[RawArticle]:
        """
        Fetch and parse a single endpoint.

        Args:
            topic_label: The source's own topic label for this endpoint
            target: Feed URL or API section

        Returns:
            List of RawArticle candidates (at most max_items_per_endpoint)
        """
        pass
