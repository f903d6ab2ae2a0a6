"""Best-effort realtime fan-out.

Events are "something changed, go refetch" hints. Nothing is persisted,
delivery is at most once per subscriber, and publishing never raises.
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from .config import settings

logger = logging.getLogger(__name__)

TASK_CHANGED = "task_changed"
PROJECT_UPDATED = "project_updated"
PROJECT_DELETED = "project_deleted"
MEMBER_CHANGED = "member_changed"
INVITATION_CHANGED = "invitation_changed"


def tasks_topic(project_id: int) -> str:
    return f"tasks:{project_id}"


def project_topic(project_id: int) -> str:
    return f"project:{project_id}"


def members_topic(project_id: int) -> str:
    return f"members:{project_id}"


def invitations_topic(user_id: int) -> str:
    return f"invitations:{user_id}"


Handler = Callable[[Dict[str, Any]], Any]


class Subscription:
    def __init__(self, broadcaster: "Broadcaster", topic: str, event: str, handler: Handler):
        self.broadcaster = broadcaster
        self.topic = topic
        self.event = event
        self.handler = handler

    @property
    def active(self) -> bool:
        return self in self.broadcaster._subscribers.get((self.topic, self.event), [])

    def unsubscribe(self) -> None:
        self.broadcaster._remove(self)


class Broadcaster:
    """Topic/event pub-sub with an optional redis transport.

    Without a redis client, publish schedules delivery to local subscribers
    and returns without waiting for them.
    With one, publish goes through redis and `listen()` feeds every process's
    local subscribers, this one included.
    """

    def __init__(self, redis_client=None, channel_prefix: str = "taskboard:", retry_seconds: float = 5.0):
        self.redis = redis_client
        self.channel_prefix = channel_prefix
        self.retry_seconds = retry_seconds
        self._subscribers: Dict[Tuple[str, str], List[Subscription]] = {}
        self._listener: Optional[asyncio.Task] = None
        self._deliveries: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls) -> "Broadcaster":
        redis_client = None
        if settings.REDIS_URL:
            redis_client = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        return cls(
            redis_client,
            channel_prefix=settings.BROADCAST_CHANNEL_PREFIX,
            retry_seconds=settings.BROADCAST_RETRY_SECONDS,
        )

    def subscribe(self, topic: str, event: str, handler: Handler) -> Subscription:
        subscription = Subscription(self, topic, event, handler)
        self._subscribers.setdefault((topic, event), []).append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        key = (subscription.topic, subscription.event)
        subscriptions = self._subscribers.get(key, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            self._subscribers.pop(key, None)

    def subscriber_count(self, topic: str, event: str) -> int:
        return len(self._subscribers.get((topic, event), []))

    async def publish(self, topic: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        payload = dict(payload or {})
        try:
            if self.redis is None:
                delivery = asyncio.create_task(self.dispatch(topic, event, payload))
                self._deliveries.add(delivery)
                delivery.add_done_callback(self._deliveries.discard)
                return
            envelope = json.dumps({"topic": topic, "event": event, "payload": payload}, default=str)
            await self.redis.publish(self.channel_prefix + topic, envelope)
        except Exception as exc:
            logger.warning("Dropped %s broadcast on %s: %s", event, topic, exc)

    async def dispatch(self, topic: str, event: str, payload: Dict[str, Any]) -> int:
        """Invoke local handlers for one event; returns how many succeeded."""
        delivered = 0
        for subscription in list(self._subscribers.get((topic, event), [])):
            try:
                result = subscription.handler(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as exc:
                logger.warning("Subscriber for %s on %s failed: %s", event, topic, exc)
        return delivered

    async def _handle_envelope(self, data) -> None:
        try:
            envelope = json.loads(data)
            topic, event = envelope["topic"], envelope["event"]
            payload = envelope.get("payload") or {}
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("Ignoring malformed broadcast envelope: %s", exc)
            return
        if not isinstance(payload, dict):
            payload = {}
        await self.dispatch(topic, event, payload)

    async def listen(self) -> None:
        """Relay redis messages to local subscribers until cancelled."""
        while True:
            pubsub = self.redis.pubsub()
            try:
                await pubsub.psubscribe(f"{self.channel_prefix}*")
                logger.info("Broadcast listener subscribed to %s*", self.channel_prefix)
                async for message in pubsub.listen():
                    if message["type"] == "pmessage":
                        await self._handle_envelope(message["data"])
            except (RedisError, OSError) as exc:
                logger.warning(
                    "Broadcast listener lost redis: %s; retrying in %ss", exc, self.retry_seconds
                )
            finally:
                await pubsub.aclose()
            await asyncio.sleep(self.retry_seconds)

    def start(self) -> None:
        if self.redis is not None and self._listener is None:
            self._listener = asyncio.create_task(self.listen())

    async def drain(self) -> None:
        """Wait until every scheduled local delivery has finished."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def stop(self) -> None:
        deliveries = list(self._deliveries)
        for delivery in deliveries:
            delivery.cancel()
        if deliveries:
            await asyncio.gather(*deliveries, return_exceptions=True)
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self.redis is not None:
            await self.redis.aclose()
