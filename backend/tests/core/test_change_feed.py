"""
Tests for the change feed
"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from campuscast.core.change_feed import CHANNEL, ChangeFeed, course_key, session_key
from campuscast.schemas.session import SessionChangeEvent

pytestmark = pytest.mark.asyncio


def change(session_id=1, course_id=10, status="live"):
    return SessionChangeEvent(
        event_type="UPDATE",
        old={"id": session_id, "course_id": course_id, "status": "live"},
        new={"id": session_id, "course_id": course_id, "status": status},
    )


@pytest.fixture
def feed():
    return ChangeFeed()


async def test_dispatch_by_session_and_course(feed):
    by_session = []
    by_course = []
    elsewhere = []
    feed.subscribe(session_key(1), by_session.append)
    feed.subscribe(course_key(10), by_course.append)
    feed.subscribe(session_key(2), elsewhere.append)

    event = change()
    await feed.publish(event)
    await feed.drain()

    assert by_session == [event]
    assert by_course == [event]
    assert elsewhere == []


async def test_async_callbacks_are_awaited(feed):
    received = []

    async def callback(event):
        received.append(event.new["status"])

    feed.subscribe(session_key(1), callback)
    await feed.publish(change(status="ended"))
    await feed.drain()

    assert received == ["ended"]


async def test_unsubscribe_stops_delivery(feed):
    received = []
    subscription = feed.subscribe(session_key(1), received.append)

    subscription.unsubscribe()
    await feed.publish(change())
    await feed.drain()

    assert received == []
    assert feed.subscriber_count() == 0


async def test_unsubscribe_twice_is_noop(feed):
    first = feed.subscribe(session_key(1), lambda event: None)
    second = feed.subscribe(session_key(1), lambda event: None)

    first.unsubscribe()
    first.unsubscribe()

    assert feed.subscriber_count(session_key(1)) == 1
    assert second.active


async def test_subscription_as_context_manager(feed):
    with feed.subscribe(course_key(10), lambda event: None):
        assert feed.subscriber_count(course_key(10)) == 1

    assert feed.subscriber_count(course_key(10)) == 0


async def test_failing_callback_does_not_block_others(feed):
    received = []

    def broken(event):
        raise RuntimeError("boom")

    feed.subscribe(session_key(1), broken)
    feed.subscribe(session_key(1), received.append)

    await feed.publish(change())
    await feed.drain()

    assert len(received) == 1


async def test_callback_may_unsubscribe_another(feed):
    received = []
    handles = {}

    def first(event):
        handles["second"].unsubscribe()

    feed.subscribe(session_key(1), first)
    handles["second"] = feed.subscribe(session_key(1), received.append)

    await feed.publish(change())
    await feed.drain()

    assert received == []


async def test_publish_goes_through_redis_when_connected(feed):
    received = []
    feed.subscribe(session_key(1), received.append)
    feed.redis_client = AsyncMock()

    event = change()
    await feed.publish(event)

    feed.redis_client.publish.assert_awaited_once_with(CHANNEL, event.model_dump_json())
    # Delivery happens when the listener reads it back
    assert received == []


async def test_redis_publish_failure_is_swallowed(feed):
    feed.redis_client = AsyncMock()
    feed.redis_client.publish.side_effect = ConnectionError("redis down")

    await feed.publish(change())


async def test_start_without_redis_url(feed):
    await feed.start()

    assert feed.redis_client is None
    assert feed.listener_task is None


async def test_close_drops_subscribers(feed):
    feed.subscribe(session_key(1), lambda event: None)

    await feed.close()

    assert feed.subscriber_count() == 0


async def test_publish_does_not_wait_for_subscribers(feed):
    stalled = asyncio.Event()
    received = []

    async def never_returns(event):
        await stalled.wait()

    feed.subscribe(course_key(10), never_returns)
    responsive = feed.subscribe(session_key(1), received.append)

    await asyncio.wait_for(feed.publish(change()), 1.0)
    await asyncio.wait_for(responsive.join(), 1.0)

    # The stuck subscriber holds up only itself
    assert len(received) == 1
    await feed.close()


async def test_events_reach_each_subscriber_in_publish_order(feed):
    received = []

    async def slow(event):
        await asyncio.sleep(0)
        received.append(event.new["status"])

    feed.subscribe(session_key(1), slow)

    await feed.publish(change(status="live"))
    await feed.publish(change(status="ended"))
    await feed.drain()

    assert received == ["live", "ended"]


async def test_close_cancels_pending_deliveries(feed):
    stalled = asyncio.Event()

    async def never_returns(event):
        await stalled.wait()

    subscription = feed.subscribe(session_key(1), never_returns)
    await feed.publish(change())
    await asyncio.sleep(0)

    await asyncio.wait_for(feed.close(), 1.0)

    assert subscription.task.done()
    assert not subscription.active


async def test_close_releases_redis_connections(feed):
    feed.redis_client = AsyncMock()
    feed.pubsub = AsyncMock()

    await feed.close()

    feed.pubsub.aclose.assert_awaited_once()
    feed.redis_client.aclose.assert_awaited_once()
