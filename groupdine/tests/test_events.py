from groupdine.sessions import events
from groupdine.sessions.events import EventBroadcaster


def test_publish_reaches_every_subscriber_of_the_session():
    bus = EventBroadcaster()
    first = bus.subscribe("s1")
    second = bus.subscribe("s1")
    other = bus.subscribe("s2")

    bus.publish("s1", events.ALL_READY)

    assert first.get_nowait() == {"event": "all-ready", "data": {}}
    assert second.get_nowait() == {"event": "all-ready", "data": {}}
    assert other.empty()


def test_unsubscribe_stops_delivery():
    bus = EventBroadcaster()
    queue = bus.subscribe("s1")
    bus.unsubscribe("s1", queue)

    bus.publish("s1", events.STATUS_UPDATE, {"status": "analyzing"})

    assert queue.empty()
    assert bus.subscriber_count("s1") == 0


def test_publish_without_subscribers_is_a_no_op():
    EventBroadcaster().publish("nobody", events.CONSENSUS_ERROR, {"message": "x"})


def test_slow_observer_drops_oldest_events():
    bus = EventBroadcaster()
    queue = bus.subscribe("s1")
    for i in range(150):
        bus.publish("s1", events.PREFERENCE_SUBMITTED, {"participant_id": str(i)})

    assert queue.qsize() == 100
    assert queue.get_nowait()["data"]["participant_id"] == "50"
