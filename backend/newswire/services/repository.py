"""
Durable article store queries.

Thin wrapper over an AsyncSession exposing the narrow set of
operations the pipeline and the query API need.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from newswire.models.database import DBArticle
from newswire.models.domain import Article, Topic


@dataclass
class ArticleFilter:
    """Criteria for selecting stored articles. ``None`` means "any"."""
    active: Optional[bool] = True
    topic: Optional[Topic] = None
    source_name: Optional[str] = None
    query: Optional[str] = None  # Case-insensitive substring over title/summary
    published_before: Optional[datetime] = None
    created_after: Optional[datetime] = None

    def clauses(self) -> list:
        clauses = []
        if self.active is not None:
            clauses.append(DBArticle.active.is_(self.active))
        if self.topic is not None:
            clauses.append(DBArticle.topic == Topic(self.topic).value)
        if self.source_name is not None:
            clauses.append(DBArticle.source_name == self.source_name)
        if self.query:
            needle = self.query.lower()
            clauses.append(or_(
                func.lower(DBArticle.title).contains(needle, autoescape=True),
                func.lower(DBArticle.summary).contains(needle, autoescape=True),
            ))
        if self.published_before is not None:
            clauses.append(DBArticle.published_at < self.published_before)
        if self.created_after is not None:
            clauses.append(DBArticle.created_at >= self.created_after)
        return clauses

    def apply(self, stmt):
        clauses = self.clauses()
        return stmt.where(and_(*clauses)) if clauses else stmt


def to_domain(row: DBArticle) -> Article:
    """Convert a database row to the domain model."""
    return Article.model_validate(row)


class ArticleRepository:
    """Article persistence operations bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_natural_keys(self, url: str, exact_key: str) -> Optional[Article]:
        """Find an article (active or not) matching either natural key."""
        result = await self.session.execute(
            select(DBArticle)
            .where(or_(DBArticle.url == url, DBArticle.exact_key == exact_key))
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return to_domain(row) if row else None

    async def insert(self, article: Article) -> Article:
        """
        Insert and commit a new article.

        Raises sqlalchemy.exc.IntegrityError if either natural key is
        already taken; the caller is responsible for rolling back.
        """
        row = DBArticle(
            id=uuid4().hex,
            title=article.title,
            summary=article.summary,
            source_name=article.source_name,
            url=article.url,
            image_url=article.image_url,
            topic=Topic(article.topic).value,
            exact_key=article.exact_key,
            published_at=article.published_at,
            fetched_at=article.fetched_at,
            active=article.active,
        )
        self.session.add(row)
        await self.session.commit()
        return to_domain(row)

    async def find_ordered(
        self,
        article_filter: ArticleFilter,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Article]:
        """Articles matching the filter, newest publication first."""
        stmt = article_filter.apply(select(DBArticle))
        stmt = stmt.order_by(DBArticle.published_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return [to_domain(row) for row in result.scalars().all()]

    async def find_ids(self, article_filter: ArticleFilter) -> list[str]:
        result = await self.session.execute(article_filter.apply(select(DBArticle.id)))
        return list(result.scalars().all())

    async def count(self, article_filter: ArticleFilter) -> int:
        stmt = article_filter.apply(select(func.count(DBArticle.id)))
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def count_by(self, column: str, article_filter: ArticleFilter) -> dict[str, int]:
        """Group counts by ``topic`` or ``source_name``, largest first."""
        col = getattr(DBArticle, column)
        stmt = article_filter.apply(select(col, func.count(DBArticle.id))).group_by(col)
        result = await self.session.execute(stmt)
        counts = {key: count for key, count in result.all()}
        return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True))

    async def bulk_update_active(self, article_filter: ArticleFilter, value: bool) -> int:
        """Set the active flag on every matching article; returns rows changed."""
        stmt = article_filter.apply(update(DBArticle)).values(active=value)
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        await self.session.commit()
        return result.rowcount or 0

    async def set_active(self, article_id: str, value: bool) -> Optional[Article]:
        row = await self.session.get(DBArticle, article_id)
        if row is None:
            return None
        row.active = value
        await self.session.commit()
        return to_domain(row)
