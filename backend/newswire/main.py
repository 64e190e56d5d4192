"""
Main FastAPI application for Newswire.
"""
import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from newswire.api import realtime
from newswire.api.routes import admin_router, news_router
from newswire.config import get_settings
from newswire.jobs.ingestion_cycle import IngestionCycleJob
from newswire.jobs.retention import RetentionJob
from newswire.models.database import Database
from newswire.services.article_store import ArticleStore
from newswire.services.cache import RecencyCache, create_redis
from newswire.services.data_ingestion.aggregator import SourceAggregator
from newswire.services.data_ingestion.dedup import DedupEngine
from newswire.services.data_ingestion.scheduler import IngestionScheduler
from newswire.services.fanout import ConnectionManager, FanoutPublisher

settings = get_settings()

# Configure structured logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    # Initialize database
    logger.info("Initializing database", url=settings.database_url)
    database = Database(settings.database_url, timeout_seconds=settings.database_timeout_seconds)
    await database.create_tables()

    # Initialize recency cache (optional)
    redis = None
    cache = None
    if settings.redis_url:
        redis = create_redis(settings.redis_url, settings.redis_timeout_seconds)
        cache = RecencyCache(
            redis,
            ttl_seconds=settings.cache_ttl_seconds,
            max_items=settings.cache_max_items,
        )
        if await cache.ping():
            logger.info("Recency cache connected")
        else:
            logger.warning("Recency cache unreachable, reads will use the database")

    store = ArticleStore(database, cache)
    connections = ConnectionManager(send_timeout=settings.websocket_send_timeout_seconds)

    # Initialize pipeline jobs
    cycle_job = IngestionCycleJob(
        aggregator=SourceAggregator.from_settings(settings),
        dedup_engine=DedupEngine(settings.similarity_threshold),
        store=store,
        publisher=FanoutPublisher(connections),
    )
    retention_job = RetentionJob(store, settings.retention_days)

    scheduler = IngestionScheduler(
        cycle_job,
        retention_job,
        fetch_interval_minutes=settings.fetch_interval_minutes,
        retention_hour=settings.retention_hour,
        retention_minute=settings.retention_minute,
        startup_delay_seconds=settings.startup_fetch_delay_seconds,
    )

    app.state.store = store
    app.state.connections = connections
    app.state.scheduler = scheduler

    scheduler.start()
    logger.info(
        "Scheduler started",
        fetch_interval_minutes=settings.fetch_interval_minutes,
        retention_time=f"{settings.retention_hour:02d}:{settings.retention_minute:02d} UTC",
    )

    yield

    # Shutdown
    logger.info("Shutting down")
    scheduler.stop()
    if redis is not None:
        await redis.aclose()
    await database.dispose()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Real-time news ingestion, deduplication and fanout.",
    version=settings.app_version,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(news_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(realtime.router)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "newswire",
        "version": settings.app_version,
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Newswire API",
        "version": settings.app_version,
        "docs": "/docs",
        "endpoints": {
            "latest": "/api/news/latest",
            "search": "/api/news/search?q=",
            "topic": "/api/news/topics/{topic}",
            "realtime": "/ws/news",
            "admin": "/api/admin",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "newswire.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
