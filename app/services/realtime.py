"""In-memory, best-effort fanout of session events to live subscribers."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Protocol

logger = logging.getLogger(__name__)

NEW_PHOTO = "new_photo"
PHOTO_PUBLISHED = "photo_published"
PHOTO_DELETED = "photo_deleted"


def session_channel(session_id: str) -> str:
    return f"session_{session_id}"


def photo_payload(photo) -> dict[str, Any]:
    """Payload shared by ``new_photo`` and ``photo_published``."""
    urls = photo.variant_urls or {}
    return {
        "id": photo.id,
        "thumbnailUrl": urls.get("thumbnail"),
        "webpUrl": urls.get("webp"),
        "tags": list(photo.tags or []),
        "createdAt": photo.created_at,
    }


class Publisher(Protocol):
    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        """Fire-and-forget delivery to the channel's current subscribers."""


class Subscription:
    def __init__(self, channel: str, max_pending: int):
        self.channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)

    def offer(self, message: dict[str, Any]) -> bool:
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def get(self) -> dict[str, Any]:
        return await self._queue.get()

    def drain(self) -> list[dict[str, Any]]:
        """Return every message already delivered, without waiting."""
        messages = []
        while not self._queue.empty():
            messages.append(self._queue.get_nowait())
        return messages

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self

    async def __anext__(self) -> dict[str, Any]:
        return await self.get()


class InMemoryPublisher:
    """At-most-once fanout: no replay, slow subscribers lose events."""

    def __init__(self, max_pending: int = 256):
        self.max_pending = max_pending
        self._channels: dict[str, set[Subscription]] = {}

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        message = {"event": event, "data": payload}
        for subscription in list(self._channels.get(channel, ())):
            try:
                delivered = subscription.offer(message)
            except Exception:
                logger.exception("Subscriber on %s failed, dropping %s", channel, event)
                continue
            if not delivered:
                logger.warning("Subscriber on %s is full, dropping %s", channel, event)

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[Subscription]:
        subscription = Subscription(channel, self.max_pending)
        self._channels.setdefault(channel, set()).add(subscription)
        try:
            yield subscription
        finally:
            subscribers = self._channels.get(channel)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._channels[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))


def safe_publish(publisher: Publisher, channel: str, event: str, payload: dict[str, Any]) -> None:
    """Publish without letting transport failures reach the triggering request."""
    try:
        publisher.publish(channel, event, payload)
    except Exception:
        logger.exception("Failed to publish %s on %s", event, channel)


publisher = InMemoryPublisher()
