import asyncio

import pytest

from gymflow.capacity_hub import GLOBAL_TOPIC, CapacityBroadcaster, CapacityHub, gym_topic
from gymflow.models.domain import CapacitySnapshot

pytestmark = pytest.mark.unit


class FakeSocket:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []
        self.closed = False

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(message)

    async def close(self):
        self.closed = True


def _snapshot(gym_id, current=1):
    return CapacitySnapshot(
        gym_id=gym_id, gym_name="Gym", current=current, max=10, available=10 - current, percentage=current * 10
    )


def test_gym_topic():
    assert gym_topic(" g1 ") == "gym:g1"


def test_publish_reaches_topic_subscribers_only():
    async def scenario():
        hub = CapacityHub()
        a, b = FakeSocket(), FakeSocket()
        await hub.subscribe(gym_topic("g1"), a)
        await hub.subscribe(gym_topic("g2"), b)
        delivered = await hub.publish(gym_topic("g1"), {"type": "x"})
        return delivered, a, b

    delivered, a, b = asyncio.run(scenario())
    assert delivered == 1
    assert a.sent == [{"type": "x"}]
    assert b.sent == []


def test_failing_subscriber_is_dropped_and_closed():
    async def scenario():
        hub = CapacityHub()
        good, bad = FakeSocket(), FakeSocket(fail=True)
        for s in (good, bad):
            await hub.subscribe(GLOBAL_TOPIC, s)
            await hub.subscribe(gym_topic("g1"), s)
        delivered = await hub.publish(GLOBAL_TOPIC, {"type": "capacity"})
        remaining = await hub.subscribers(gym_topic("g1"))
        return delivered, remaining, good, bad

    delivered, remaining, good, bad = asyncio.run(scenario())
    assert delivered == 1
    assert remaining == {good}
    assert bad.closed is True


def test_unsubscribe_and_drop():
    async def scenario():
        hub = CapacityHub()
        s = FakeSocket()
        await hub.subscribe(gym_topic("g1"), s)
        await hub.subscribe(GLOBAL_TOPIC, s)
        await hub.unsubscribe(gym_topic("g1"), s)
        after_unsub = await hub.subscribers(gym_topic("g1"))
        await hub.drop(s)
        return after_unsub, await hub.subscribers(GLOBAL_TOPIC)

    after_unsub, after_drop = asyncio.run(scenario())
    assert after_unsub == set()
    assert after_drop == set()


def test_broadcaster_delivers_event_then_capacity():
    async def scenario():
        hub = CapacityHub()
        gym_sock, global_sock = FakeSocket(), FakeSocket()
        await hub.subscribe(gym_topic("g1"), gym_sock)
        await hub.subscribe(GLOBAL_TOPIC, global_sock)
        broadcaster = CapacityBroadcaster(hub, lambda gym_id: _snapshot(gym_id, current=3))
        broadcaster.publish_checkin({"id": "c1", "gymId": "g1"})
        broadcaster.publish_checkout({"id": "c1", "gymId": "g1"})
        assert broadcaster.pending == 2
        processed = await broadcaster.drain()
        return processed, gym_sock, global_sock

    processed, gym_sock, global_sock = asyncio.run(scenario())
    assert processed == 2
    assert [m["type"] for m in gym_sock.sent] == ["checkin", "capacity", "checkout", "capacity"]
    assert gym_sock.sent[0]["payload"]["id"] == "c1"
    assert gym_sock.sent[1]["payload"]["current"] == 3
    assert [m["type"] for m in global_sock.sent] == ["capacity", "capacity"]


def test_broadcaster_accepts_async_provider():
    async def provider(gym_id):
        return _snapshot(gym_id, current=5)

    async def scenario():
        hub = CapacityHub()
        sock = FakeSocket()
        await hub.subscribe(GLOBAL_TOPIC, sock)
        broadcaster = CapacityBroadcaster(hub, provider)
        broadcaster.publish_checkin({"gymId": "g9"})
        await broadcaster.drain()
        return sock

    sock = asyncio.run(scenario())
    assert sock.sent == [{"type": "capacity", "payload": _snapshot("g9", current=5).to_payload()}]


def test_broadcaster_swallows_provider_errors_and_skips_missing_gym():
    def provider(gym_id):
        raise RuntimeError("db down")

    async def scenario():
        hub = CapacityHub()
        sock = FakeSocket()
        await hub.subscribe(gym_topic("g1"), sock)
        broadcaster = CapacityBroadcaster(hub, provider)
        broadcaster.publish_checkin({"id": "no-gym"})
        broadcaster.publish_checkin({"id": "c2", "gymId": "g1"})
        processed = await broadcaster.drain()
        return processed, sock

    processed, sock = asyncio.run(scenario())
    assert processed == 2
    assert [m["type"] for m in sock.sent] == ["checkin"]


def test_broadcaster_queue_is_bounded():
    broadcaster = CapacityBroadcaster(CapacityHub(), lambda gym_id: None, max_pending=2)
    for i in range(5):
        broadcaster.publish_checkin({"id": str(i), "gymId": "g1"})
    assert broadcaster.pending == 2


def test_started_broadcaster_consumes_in_background():
    async def scenario():
        hub = CapacityHub()
        sock = FakeSocket()
        await hub.subscribe(gym_topic("g1"), sock)
        broadcaster = CapacityBroadcaster(hub, lambda gym_id: None)
        await broadcaster.start()
        broadcaster.publish_checkin({"id": "c3", "gymId": "g1"})
        for _ in range(50):
            if sock.sent:
                break
            await asyncio.sleep(0.01)
        await broadcaster.stop()
        return sock, broadcaster.pending

    sock, pending = asyncio.run(scenario())
    assert sock.sent == [{"type": "checkin", "payload": {"id": "c3", "gymId": "g1"}}]
    assert pending == 0
