from __future__ import annotations

import json

import pytest

from app.models.events import EventType
from app.services import streaming
from app.services.broadcaster import ProgressBroadcaster, Subscriber, SubscriberClosed
from app.services.session_registry import SessionRegistry


@pytest.fixture
def registry():
    registry = SessionRegistry()
    registry.create("job-1", zip_code="94107")
    return registry


@pytest.mark.asyncio
async def test_broadcast_reaches_every_subscriber(registry):
    broadcaster = ProgressBroadcaster(registry)
    subs = [Subscriber("job-1") for _ in range(3)]
    for sub in subs:
        assert broadcaster.subscribe("job-1", sub)

    delivered = broadcaster.broadcast("job-1", streaming.complete(5))

    assert delivered == 3
    for sub in subs:
        event_type, message = await sub.receive(timeout=1)
        assert event_type is EventType.COMPLETE
        payload = json.loads(message)
        assert payload == {
            "type": "complete",
            "totalContractors": 5,
            "message": "Search complete. Found 5 contractors.",
        }


@pytest.mark.asyncio
async def test_failing_subscriber_is_dropped_and_others_still_receive(registry):
    broadcaster = ProgressBroadcaster(registry)
    healthy = Subscriber("job-1")
    full = Subscriber("job-1", maxsize=1)
    broadcaster.subscribe("job-1", healthy)
    broadcaster.subscribe("job-1", full)

    broadcaster.broadcast("job-1", streaming.error("first"))
    delivered = broadcaster.broadcast("job-1", streaming.error("second"))

    assert delivered == 1
    assert full.closed
    assert full not in registry.get("job-1").subscribers
    assert json.loads((await healthy.receive(timeout=1))[1])["message"] == "first"
    assert json.loads((await healthy.receive(timeout=1))[1])["message"] == "second"


def test_broadcast_without_session_is_noop(registry):
    broadcaster = ProgressBroadcaster(registry)
    assert broadcaster.broadcast("unknown", streaming.complete(0)) == 0
    assert broadcaster.subscribe("unknown", Subscriber("unknown")) is False


@pytest.mark.asyncio
async def test_unsubscribe_closes_and_detaches(registry):
    broadcaster = ProgressBroadcaster(registry)
    sub = Subscriber("job-1")
    broadcaster.subscribe("job-1", sub)

    broadcaster.unsubscribe("job-1", sub)

    assert sub.closed
    assert len(registry.get("job-1").subscribers) == 0
    with pytest.raises(SubscriberClosed):
        sub.send(EventType.ERROR, "x")
    assert await sub.receive(timeout=0.01) is None


def test_subscriber_set_does_not_keep_handles_alive(registry):
    broadcaster = ProgressBroadcaster(registry)
    broadcaster.subscribe("job-1", Subscriber("job-1"))
    # Only the session's weak set referenced it.
    assert len(registry.get("job-1").subscribers) == 0
