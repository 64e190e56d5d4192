"""
Domain models for Newswire.
These are the core business entities, independent of database/API representation.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Enums
# =============================================================================

class Topic(str, Enum):
    """Canonical topics used for classification and fanout partitioning."""
    POLITICS = "politics"
    TECHNOLOGY = "technology"
    BUSINESS = "business"
    SPORTS = "sports"
    ENTERTAINMENT = "entertainment"
    HEALTH = "health"
    SCIENCE = "science"
    WORLD = "world"
    GENERAL = "general"


# Source-side topic labels that differ from the canonical names
TOPIC_LABEL_MAP = {
    "tech": Topic.TECHNOLOGY,
    "sci": Topic.SCIENCE,
    "sport": Topic.SPORTS,
    "culture": Topic.ENTERTAINMENT,
    "film": Topic.ENTERTAINMENT,
    "music": Topic.ENTERTAINMENT,
    "money": Topic.BUSINESS,
}


def map_topic(label: Optional[str]) -> Topic:
    """
    Map a source's own topic label onto the canonical enum.

    Labels found in the lookup table are translated; labels that already
    name a canonical topic are kept as-is; anything else is ``general``.
    """
    if not label:
        return Topic.GENERAL
    key = label.strip().lower()
    if key in TOPIC_LABEL_MAP:
        return TOPIC_LABEL_MAP[key]
    try:
        return Topic(key)
    except ValueError:
        return Topic.GENERAL


# =============================================================================
# Articles
# =============================================================================

class Article(BaseModel):
    """Normalized article flowing through the pipeline."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None  # Assigned by the store on insert
    title: str
    summary: str
    source_name: str
    url: str  # Canonical URL, natural key
    image_url: Optional[str] = None
    topic: Topic = Topic.GENERAL

    published_at: datetime
    fetched_at: datetime = Field(default_factory=utcnow)
    active: bool = True

    # Fingerprint of title + url, filled in by the dedup engine
    exact_key: Optional[str] = None


class ArticlePage(BaseModel):
    """A page of articles returned by the query API."""
    data: list[Article]
    limit: int
    offset: int
    total: int
    timestamp: datetime = Field(default_factory=utcnow)
