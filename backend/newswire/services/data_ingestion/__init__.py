"""
Data Ingestion Services for Newswire.

This module provides connectors to fetch articles from news sources:
- RSS/Atom feed aggregation (BBC, Reuters)
- The Guardian content API
- Admission gate and content deduplication
"""

from newswire.services.data_ingestion.base import (
    BaseSource,
    FetchBatch,
    SourceConfig,
    RawArticle,
    IngestionResult,
)
from newswire.services.data_ingestion.rss import RSSSource
from newswire.services.data_ingestion.guardian import GuardianSource
from newswire.services.data_ingestion.dedup import DedupEngine, compute_exact_key
from newswire.services.data_ingestion.aggregator import SourceAggregator

__all__ = [
    "BaseSource",
    "FetchBatch",
    "SourceConfig",
    "RawArticle",
    "IngestionResult",
    "RSSSource",
    "GuardianSource",
    "DedupEngine",
    "compute_exact_key",
    "SourceAggregator",
]
