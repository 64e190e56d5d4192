"""
SQLAlchemy database models for Newswire.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    String,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from newswire.models.domain import Topic, utcnow


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Articles
# =============================================================================

class DBArticle(Base):
    """Stored article. Rows are deactivated, never deleted."""
    __tablename__ = "articles"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    source_name: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    topic: Mapped[str] = mapped_column(String(20), nullable=False, default=Topic.GENERAL.value)

    # MD5 of title + url
    exact_key: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    # Indexes
    __table_args__ = (
        Index("ix_articles_published_at", "published_at"),
        Index("ix_articles_topic_published", "topic", "published_at"),
        Index("ix_articles_source_published", "source_name", "published_at"),
    )


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str, timeout_seconds: float = 10.0):
        self.engine = create_async_engine(
            database_url,
            echo=False,  # Set to True for SQL logging
            connect_args={"timeout": timeout_seconds},
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        """Close all pooled connections."""
        await self.engine.dispose()
