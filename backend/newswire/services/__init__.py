"""
Services layer - core pipeline logic for Newswire.

1. Data ingestion (data_ingestion/):
   - RSS/Atom feeds and the Guardian content API
   - Admission gate, fingerprinting and near-duplicate removal
   - Concurrent aggregation with a fetch deadline

2. Repository (repository.py):
   - SQLAlchemy queries over the durable article table

3. Recency cache (cache.py):
   - Redis lists of the newest ids per scope, with TTL

4. Article store (article_store.py):
   - Cache-aside gateway: persist first, then cache

5. Fanout (fanout.py):
   - WebSocket connection registry and topic broadcasts
"""

from newswire.services.repository import ArticleFilter, ArticleRepository
from newswire.services.cache import RecencyCache, create_redis
from newswire.services.article_store import ArticleStore, StoreUnavailableError
from newswire.services.fanout import ConnectionManager, FanoutPublisher

__all__ = [
    # Persistence
    "ArticleFilter",
    "ArticleRepository",
    "ArticleStore",
    "StoreUnavailableError",
    # Cache
    "RecencyCache",
    "create_redis",
    # Fanout
    "ConnectionManager",
    "FanoutPublisher",
]
