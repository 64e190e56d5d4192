"""
FastAPI routes for the Newswire API.
"""

import secrets
from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from newswire.config import Settings, get_settings
from newswire.models.domain import ArticlePage, Topic, utcnow
from newswire.services.article_store import ArticleStore
from newswire.services.data_ingestion.scheduler import IngestionScheduler
from newswire.services.fanout import ConnectionManager

logger = structlog.get_logger(__name__)

news_router = APIRouter(prefix="/news", tags=["news"])


def get_store(request: Request) -> ArticleStore:
    """Dependency to get the article store created at startup."""
    return request.app.state.store


def get_scheduler(request: Request) -> IngestionScheduler:
    return request.app.state.scheduler


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connections


StoreDep = Annotated[ArticleStore, Depends(get_store)]
SchedulerDep = Annotated[IngestionScheduler, Depends(get_scheduler)]
Limit = Annotated[int, Query(ge=1, le=100)]
Offset = Annotated[int, Query(ge=0)]


def require_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    x_api_key: Annotated[Optional[str], Header()] = None,
) -> None:
    """Admin guard: 501 when no key is configured, 401 on a missing or wrong key."""
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Admin API not configured",
        )
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.admin_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


admin_router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_api_key)],
)


# ============================================================================
# News Routes
# ============================================================================


@news_router.get("/latest", response_model=ArticlePage)
async def get_latest_news(store: StoreDep, limit: Limit = 20, offset: Offset = 0):
    """
    Get the newest active articles across all topics.

    Served from the recency cache when it is warm, otherwise from the database.
    """
    articles = await store.latest(limit=limit, offset=offset)
    return ArticlePage(data=articles, limit=limit, offset=offset, total=len(articles))


@news_router.get("/search", response_model=ArticlePage)
async def search_news(
    store: StoreDep,
    q: Annotated[str, Query(min_length=2, max_length=100)],
    limit: Limit = 20,
    offset: Offset = 0,
):
    """Case-insensitive search over titles and summaries."""
    articles = await store.search(q, limit=limit, offset=offset)
    return ArticlePage(data=articles, limit=limit, offset=offset, total=len(articles))


@news_router.get("/topics/{topic}", response_model=ArticlePage)
async def get_topic_news(
    topic: Topic,
    store: StoreDep,
    limit: Limit = 20,
    offset: Offset = 0,
):
    """Get the newest active articles in one topic."""
    articles = await store.by_topic(topic, limit=limit, offset=offset)
    return ArticlePage(data=articles, limit=limit, offset=offset, total=len(articles))


# ============================================================================
# Admin Routes
# ============================================================================


@admin_router.post("/trigger-fetch")
async def trigger_fetch(scheduler: SchedulerDep):
    """Run one ingestion cycle now and wait for it to finish."""
    if scheduler.is_cycle_running:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ingestion cycle already in progress",
        )

    logger.info("Manual ingestion cycle triggered")
    stats = await scheduler.run_cycle()
    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch news",
        )

    return {
        "success": stats.success,
        "message": "News fetch completed",
        "new_articles": stats.persisted,
        "stats": stats.to_dict(),
        "timestamp": utcnow().isoformat(),
    }


@admin_router.post("/retention-sweep")
async def trigger_retention_sweep(scheduler: SchedulerDep):
    """Run the retention sweep now."""
    if scheduler.is_sweep_running:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Retention sweep already in progress",
        )

    count = await scheduler.run_retention_sweep()
    if count is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Retention sweep failed",
        )
    return {"success": True, "deactivated": count, "timestamp": utcnow().isoformat()}


@admin_router.get("/stats")
async def get_stats(
    store: StoreDep,
    scheduler: SchedulerDep,
    connections: Annotated[ConnectionManager, Depends(get_connection_manager)],
):
    """Article counts, scheduler state and live connection count."""
    return {
        "success": True,
        "data": {
            **await store.stats(),
            "scheduler": scheduler.get_status(),
            "connections": connections.connection_count,
        },
        "timestamp": utcnow().isoformat(),
    }


@admin_router.delete("/cache")
async def clear_cache(store: StoreDep):
    """Drop every recency cache entry. The database is untouched."""
    if not await store.clear_cache():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cache unavailable",
        )
    return {"success": True, "message": "Cache cleared successfully"}


@admin_router.post("/news/{article_id}/deactivate")
async def deactivate_article(article_id: str, store: StoreDep):
    """Soft-delete one article."""
    article = await store.deactivate(article_id)
    if article is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="News item not found",
        )
    logger.info("Article deactivated", article_id=article_id)
    return {"success": True, "message": "News item deactivated", "data": article}
