"""
Tests for the realtime broadcast hub.
"""

import asyncio

import pytest

from enrollment_hub.core.broadcast import BroadcastHub, get_hub, reset_hub


class FailingSubscriber:
    async def send_json(self, data) -> None:
        raise ConnectionResetError("client went away")


class HangingSubscriber:
    async def send_json(self, data) -> None:
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_publish_reaches_only_topic_subscribers(hub, subscriber_factory):
    watcher = subscriber_factory()
    bystander = subscriber_factory()
    await hub.subscribe("class:cls-1", watcher)
    await hub.subscribe("class:cls-2", bystander)

    delivered = await hub.publish("class:cls-1", {"event": "capacity-update"})

    assert delivered == 1
    assert watcher.messages == [{"event": "capacity-update"}]
    assert bystander.messages == []


@pytest.mark.asyncio
async def test_publish_without_subscribers(hub):
    assert await hub.publish("class:nobody", {"event": "x"}) == 0


@pytest.mark.asyncio
async def test_messages_arrive_in_publish_order(hub, subscriber_factory):
    watcher = subscriber_factory()
    await hub.subscribe("class:cls-1", watcher)

    for n in range(5):
        await hub.publish("class:cls-1", {"n": n})

    assert [m["n"] for m in watcher.messages] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_failed_subscriber_is_dropped_everywhere(hub, subscriber_factory):
    healthy = subscriber_factory()
    broken = FailingSubscriber()
    await hub.subscribe("class:cls-1", healthy)
    await hub.subscribe("class:cls-1", broken)
    await hub.subscribe("student:stu-1", broken)

    delivered = await hub.publish("class:cls-1", {"event": "x"})

    assert delivered == 1
    assert healthy.messages == [{"event": "x"}]
    assert hub.subscriber_count("class:cls-1") == 1
    assert hub.subscriber_count("student:stu-1") == 0


@pytest.mark.asyncio
async def test_slow_subscriber_times_out(subscriber_factory):
    hub = BroadcastHub(send_timeout=0.05)
    healthy = subscriber_factory()
    await hub.subscribe("class:cls-1", healthy)
    await hub.subscribe("class:cls-1", HangingSubscriber())

    delivered = await asyncio.wait_for(hub.publish("class:cls-1", {"event": "x"}), timeout=2)

    assert delivered == 1
    assert hub.subscriber_count("class:cls-1") == 1


@pytest.mark.asyncio
async def test_unsubscribe_all_cleans_up_topics(hub, subscriber_factory):
    socket = subscriber_factory()
    await hub.subscribe("class:cls-1", socket)
    await hub.subscribe("student:stu-1", socket)
    assert hub.topic_count == 2

    await hub.unsubscribe_all(socket)

    assert hub.topic_count == 0


@pytest.mark.asyncio
async def test_subscribing_twice_is_one_subscription(hub, subscriber_factory):
    socket = subscriber_factory()
    await hub.subscribe("class:cls-1", socket)
    await hub.subscribe("class:cls-1", socket)

    await hub.publish("class:cls-1", {"event": "x"})

    assert hub.subscriber_count("class:cls-1") == 1
    assert len(socket.messages) == 1


def test_global_hub_is_shared_until_reset():
    reset_hub()
    first = get_hub()
    assert get_hub() is first

    reset_hub()
    assert get_hub() is not first
    reset_hub()
