"""
Realtime fanout to connected WebSocket clients.

Every client receives the batch-level ``news:update`` event. Clients
subscribed to a topic also receive one ``news:topic_update`` per new
article in that topic. Delivery is best-effort: a client that fails or
stalls on a send is dropped and never blocks the others.
"""
import asyncio
from typing import Any, Iterable

import structlog
from fastapi import WebSocket

from newswire.models.domain import Article, Topic, utcnow

logger = structlog.get_logger(__name__)

NEWS_CONNECTED = "news:connected"
NEWS_UPDATE = "news:update"
NEWS_TOPIC_UPDATE = "news:topic_update"


class ConnectionManager:
    """Tracks live connections and their topic subscriptions."""

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._subscriptions: dict[WebSocket, set[Topic]] = {}

    @property
    def connection_count(self) -> int:
        return len(self._subscriptions)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._subscriptions[websocket] = set()
        logger.info("Client connected", connections=self.connection_count)

    def disconnect(self, websocket: WebSocket) -> None:
        if self._subscriptions.pop(websocket, None) is not None:
            logger.info("Client disconnected", connections=self.connection_count)

    def subscribe(self, websocket: WebSocket, topics: Iterable[Topic]) -> set[Topic]:
        """Join topics; a no-op for sockets that are not (or no longer) connected."""
        subscribed = self._subscriptions.get(websocket)
        if subscribed is None:
            return set()
        subscribed.update(topics)
        return set(subscribed)

    def unsubscribe(self, websocket: WebSocket, topics: Iterable[Topic]) -> set[Topic]:
        subscribed = self._subscriptions.get(websocket, set())
        subscribed.difference_update(topics)
        return set(subscribed)

    def subscribers(self, topic: Topic) -> list[WebSocket]:
        return [ws for ws, topics in self._subscriptions.items() if topic in topics]

    async def send(self, websocket: WebSocket, event: str, data: Any) -> bool:
        """Send one event; drops the connection on failure or timeout."""
        try:
            await asyncio.wait_for(
                websocket.send_json({"event": event, "data": data}),
                timeout=self.send_timeout,
            )
            return True
        except Exception as e:
            logger.warning("Dropping client after failed send", event=event, error=repr(e))
            self.disconnect(websocket)
            return False

    async def broadcast_all(self, event: str, data: Any) -> int:
        """Send to every client; returns how many received it."""
        return await self._broadcast(list(self._subscriptions), event, data)

    async def broadcast_to_topic(self, topic: Topic, event: str, data: Any) -> int:
        """Send to clients subscribed to ``topic``."""
        return await self._broadcast(self.subscribers(topic), event, data)

    async def _broadcast(self, targets: list[WebSocket], event: str, data: Any) -> int:
        if not targets:
            return 0
        results = await asyncio.gather(*(self.send(ws, event, data) for ws in targets))
        return sum(1 for delivered in results if delivered)


class FanoutPublisher:
    """Announces newly stored articles to connected clients."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def publish(self, articles: list[Article]) -> None:
        if not articles:
            return

        timestamp = utcnow().isoformat()
        await self.manager.broadcast_all(NEWS_UPDATE, {
            "type": "new_articles",
            "data": [article.model_dump(mode="json") for article in articles],
            "count": len(articles),
            "timestamp": timestamp,
        })

        for article in articles:
            await self.manager.broadcast_to_topic(article.topic, NEWS_TOPIC_UPDATE, {
                "type": "topic_update",
                "topic": Topic(article.topic).value,
                "data": article.model_dump(mode="json"),
                "timestamp": timestamp,
            })

        logger.info(
            "Fanout published",
            articles=len(articles),
            connections=self.manager.connection_count,
        )
