"""
WebSocket endpoint for realtime news updates.

Clients send JSON messages of the form
``{"event": "news:subscribe", "topics": ["technology", "world"]}``
to join or leave per-topic updates. Unknown topics are ignored.
"""
import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from newswire.models.domain import Topic, utcnow
from newswire.services.fanout import NEWS_CONNECTED, ConnectionManager

logger = structlog.get_logger(__name__)

router = APIRouter()

NEWS_SUBSCRIBE = "news:subscribe"
NEWS_UNSUBSCRIBE = "news:unsubscribe"
NEWS_SUBSCRIPTIONS = "news:subscriptions"


def parse_topics(values) -> list[Topic]:
    if not isinstance(values, list):
        return []
    topics = []
    for value in values:
        try:
            topics.append(Topic(value))
        except ValueError:
            logger.debug("Ignoring unknown topic", topic=value)
    return topics


@router.websocket("/ws/news")
async def news_socket(websocket: WebSocket):
    manager: ConnectionManager = websocket.app.state.connections

    await manager.connect(websocket)
    greeted = await manager.send(websocket, NEWS_CONNECTED, {
        "message": "Connected to real-time news feed",
        "timestamp": utcnow().isoformat(),
    })
    if not greeted:
        return

    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                continue

            event = message.get("event")
            topics = parse_topics(message.get("topics"))
            if event == NEWS_SUBSCRIBE:
                current = manager.subscribe(websocket, topics)
            elif event == NEWS_UNSUBSCRIBE:
                current = manager.unsubscribe(websocket, topics)
            else:
                continue

            delivered = await manager.send(websocket, NEWS_SUBSCRIPTIONS, {
                "topics": sorted(t.value for t in current),
            })
            if not delivered:
                break
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        # Non-JSON frame
        logger.warning("Closing socket after malformed message", error=str(e))
    finally:
        manager.disconnect(websocket)
