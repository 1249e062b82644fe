import asyncio
import inspect
import itertools
import redis.asyncio as redis
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import logging

from ..schemas.session import SessionChangeEvent

logger = logging.getLogger(__name__)

CHANNEL = "campuscast:podcasts"

ChangeCallback = Callable[[SessionChangeEvent], Union[None, Awaitable[None]]]


def session_key(session_id: Any) -> str:
    return f"session:{session_id}"


def course_key(course_id: Any) -> str:
    return f"course:{course_id}"


class Subscription:
    """
    Handle returned by ChangeFeed.subscribe; unsubscribing twice is a no-op.

    Each subscription drains its own queue in a consumer task, so a slow
    callback only delays its own deliveries, in publish order.
    """

    def __init__(self, feed: "ChangeFeed", key: str, token: int, callback: ChangeCallback):
        self.feed = feed
        self.key = key
        self.token = token
        self.callback = callback
        self.active = True
        self.queue: Optional[asyncio.Queue] = None
        self.task: Optional[asyncio.Task] = None

    def deliver(self, event: SessionChangeEvent):
        if not self.active:
            return
        if self.queue is None:
            self.queue = asyncio.Queue()
        self.queue.put_nowait(event)
        if self.task is None:
            self.task = asyncio.create_task(self._consume())

    async def _consume(self):
        while self.active:
            event = await self.queue.get()
            try:
                if not self.active:
                    continue
                result = self.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Change feed subscriber for {self.key} failed: {e}")
            finally:
                self.queue.task_done()

    async def join(self):
        """Wait until every queued event has been handled"""
        if self.active and self.queue is not None:
            await self.queue.join()

    def unsubscribe(self):
        if not self.active:
            return
        self.active = False
        self.feed._remove(self.key, self.token)

        if self.queue is not None:
            # Release anyone waiting in join()
            while not self.queue.empty():
                self.queue.get_nowait()
                self.queue.task_done()

        if self.task is not None and self.task is not _current_task():
            self.task.cancel()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class ChangeFeed:
    """
    Fans out row-level podcast changes to subscribers keyed by session or course.

    With a Redis URL the events travel over pub/sub so every API process sees
    them; without one they are dispatched in-process. Either way publish()
    returns before any subscriber runs.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url
        self.redis_client = None
        self.pubsub = None
        self.listener_task: Optional[asyncio.Task] = None
        self.subscribers: Dict[str, Dict[int, Subscription]] = {}
        self._tokens = itertools.count(1)

    async def start(self):
        """Initialize Redis connection for pub/sub"""
        if not self.redis_url:
            logger.info("No Redis URL configured, change feed is in-process only")
            return

        try:
            self.redis_client = redis.from_url(self.redis_url)
            self.pubsub = self.redis_client.pubsub()
            await self.pubsub.subscribe(CHANNEL)

            # Start background task to listen for Redis messages
            self.listener_task = asyncio.create_task(self.redis_listener())
            logger.info("Redis pub/sub initialized")
        except Exception as e:
            logger.error(f"Failed to initialize Redis, falling back to in-process feed: {e}")
            self.redis_client = None
            self.pubsub = None

    async def redis_listener(self):
        """Listen for Redis pub/sub messages and dispatch them locally"""
        try:
            async for message in self.pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event = SessionChangeEvent.model_validate_json(message["data"])
                except ValueError as e:
                    logger.error(f"Dropping malformed change event: {e}")
                    continue
                self.dispatch(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in Redis listener: {e}")

    def subscribe(self, key: str, callback: ChangeCallback) -> Subscription:
        """Register a callback for a session:<id> or course:<id> key"""
        token = next(self._tokens)
        subscription = Subscription(self, key, token, callback)
        self.subscribers.setdefault(key, {})[token] = subscription
        logger.debug(f"Subscribed to {key} ({len(self.subscribers[key])} subscribers)")
        return subscription

    def _remove(self, key: str, token: int):
        subscriptions = self.subscribers.get(key)
        if not subscriptions:
            return
        subscriptions.pop(token, None)
        if not subscriptions:
            del self.subscribers[key]
        logger.debug(f"Unsubscribed from {key}")

    def subscriber_count(self, key: Optional[str] = None) -> int:
        if key is not None:
            return len(self.subscribers.get(key, {}))
        return sum(len(subscriptions) for subscriptions in self.subscribers.values())

    async def publish(self, event: SessionChangeEvent):
        """Publish a change; delivery is best-effort and never raises"""
        if self.redis_client:
            try:
                await self.redis_client.publish(CHANNEL, event.model_dump_json())
            except Exception as e:
                logger.error(f"Error publishing change event: {e}")
            return

        self.dispatch(event)

    def dispatch(self, event: SessionChangeEvent):
        """Queue an event for subscribers of its session and course keys"""
        keys = [session_key(event.new.get("id")), course_key(event.new.get("course_id"))]

        for key in keys:
            for subscription in list(self.subscribers.get(key, {}).values()):
                subscription.deliver(event)

    async def drain(self):
        """Wait until every subscriber has handled what was dispatched so far"""
        for subscriptions in list(self.subscribers.values()):
            for subscription in list(subscriptions.values()):
                await subscription.join()

    async def close(self):
        """Close Redis connections and drop all subscribers"""
        if self.listener_task:
            self.listener_task.cancel()
            try:
                await self.listener_task
            except asyncio.CancelledError:
                pass
            self.listener_task = None

        consumers = []
        for subscriptions in list(self.subscribers.values()):
            for subscription in list(subscriptions.values()):
                if subscription.task is not None:
                    consumers.append(subscription.task)
                subscription.unsubscribe()
        if consumers:
            await asyncio.gather(*consumers, return_exceptions=True)

        if self.pubsub:
            await self.pubsub.aclose()
        if self.redis_client:
            await self.redis_client.aclose()
        self.subscribers.clear()
