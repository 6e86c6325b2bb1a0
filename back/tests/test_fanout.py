# Standard library imports
import asyncio
import json
import uuid

# Third-party imports
import pytest

# Local application imports
from app.schemas.issues.event_schemas import EventKind, IssueEvent
from app.schemas.issues.issue_schemas import IssueResponse
from app.services.realtime.fanout import FEED, ChangeFanout, SubscriptionClosed
from app.services.realtime.redis_bridge import RedisEventBridge
from tests.conftest import NOW, FakeClock, make_snapshot


@pytest.fixture
def fanout() -> ChangeFanout:
    return ChangeFanout(clock=FakeClock(NOW), origin="api-1")


def test_observer_receives_only_its_issues(fanout):
    watched, other = make_snapshot(), make_snapshot()
    observer = fanout.subscribe([watched.id])

    fanout.publish(EventKind.CREATED, watched)
    fanout.publish(EventKind.CREATED, other)

    assert observer.get_nowait().issue_id == watched.id
    assert observer.pending() == 0


def test_events_arrive_in_publish_order_with_sequences(fanout):
    issue_id = uuid.uuid4()
    observer = fanout.subscribe([issue_id])

    fanout.publish(EventKind.CREATED, make_snapshot(issue_id))
    fanout.publish(EventKind.UPDATED, make_snapshot(issue_id, version_id=2, yes_votes=1))
    fanout.publish(EventKind.UPDATED, make_snapshot(issue_id, version_id=3, yes_votes=2))

    events = [observer.get_nowait() for _ in range(3)]
    assert [event.kind for event in events] == [EventKind.CREATED, EventKind.UPDATED, EventKind.UPDATED]
    assert [event.sequence for event in events] == [1, 2, 3]
    assert [event.issue.yes_votes for event in events] == [0, 1, 2]
    assert all(event.origin == "api-1" and event.emitted_at == NOW for event in events)


def test_feed_observer_sees_every_issue(fanout):
    feed = fanout.subscribe(feed=True)
    fanout.publish(EventKind.CREATED, make_snapshot())
    fanout.publish(EventKind.CREATED, make_snapshot())

    assert feed.pending() == 2
    assert fanout.observer_count(FEED) == 1


def test_observer_on_issue_and_feed_gets_each_event_once(fanout):
    issue = make_snapshot()
    observer = fanout.subscribe([issue.id], feed=True)

    fanout.publish(EventKind.CREATED, issue)

    assert observer.pending() == 1


def test_unsubscribe_stops_delivery(fanout):
    issue = make_snapshot()
    observer = fanout.subscribe([issue.id])
    observer.unsubscribe(issue.id)

    fanout.publish(EventKind.UPDATED, issue)

    assert observer.pending() == 0
    assert fanout.observer_count(issue.id) == 0


def test_closing_a_session_drops_all_its_subscriptions(fanout):
    issue = make_snapshot()
    first = fanout.subscribe([issue.id], session_id="ws-1")
    second = fanout.subscribe(feed=True, session_id="ws-1")
    survivor = fanout.subscribe([issue.id], session_id="ws-2")

    assert fanout.close_session("ws-1") == 2
    fanout.publish(EventKind.UPDATED, issue)

    assert first.closed and second.closed
    assert fanout.observer_count(issue.id) == 1
    assert survivor.pending() == 1
    with pytest.raises(SubscriptionClosed):
        first.get_nowait()
    with pytest.raises(SubscriptionClosed):
        first.subscribe(uuid.uuid4())


async def test_closed_subscription_ends_async_iteration(fanout):
    issue = make_snapshot()
    observer = fanout.subscribe([issue.id])
    fanout.publish(EventKind.CREATED, issue)

    async def collect():
        return [event async for event in observer]

    collector = asyncio.create_task(collect())
    await asyncio.sleep(0)
    observer.close()
    received = await asyncio.wait_for(collector, timeout=1)

    assert [event.kind for event in received] == [EventKind.CREATED]


async def test_blocked_reader_wakes_on_publish(fanout):
    issue = make_snapshot()
    observer = fanout.subscribe([issue.id])

    reader = asyncio.create_task(observer.get())
    await asyncio.sleep(0)
    fanout.publish(EventKind.UPDATED, issue)

    event = await asyncio.wait_for(reader, timeout=1)
    assert event.issue_id == issue.id


def relayed(kind: EventKind, issue: IssueResponse, origin: str = "worker-1") -> IssueEvent:
    return IssueEvent(kind=kind, issue_id=issue.id, sequence=1, issue=issue, emitted_at=NOW, origin=origin)


def test_relayed_events_reach_local_observers(fanout):
    issue = make_snapshot(version_id=4)
    observer = fanout.subscribe([issue.id])

    assert fanout.deliver_external(relayed(EventKind.UPDATED, issue))
    assert observer.get_nowait().issue.version_id == 4


def test_own_events_coming_back_are_ignored(fanout):
    issue = make_snapshot()
    observer = fanout.subscribe([issue.id])

    assert not fanout.deliver_external(relayed(EventKind.UPDATED, issue, origin="api-1"))
    assert observer.pending() == 0


def test_stale_relayed_events_are_dropped(fanout):
    issue_id = uuid.uuid4()
    observer = fanout.subscribe([issue_id])
    fanout.publish(EventKind.UPDATED, make_snapshot(issue_id, version_id=5))
    observer.get_nowait()

    assert not fanout.deliver_external(relayed(EventKind.UPDATED, make_snapshot(issue_id, version_id=5)))
    assert not fanout.deliver_external(relayed(EventKind.UPDATED, make_snapshot(issue_id, version_id=3)))
    assert fanout.deliver_external(relayed(EventKind.DELETED, make_snapshot(issue_id, version_id=5)))
    assert observer.get_nowait().kind is EventKind.DELETED


class FakeRedis:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


async def test_bridge_mirrors_local_events_to_redis(fanout):
    client = FakeRedis()
    bridge = RedisEventBridge(fanout, client=client, channel="issues:test")
    issue = make_snapshot()

    fanout.publish(EventKind.CREATED, issue)
    sent = await bridge.flush()

    assert sent == 1
    channel, message = client.published[0]
    assert channel == "issues:test"
    payload = json.loads(message)
    assert payload["kind"] == "created"
    assert payload["issue_id"] == str(issue.id)
    assert payload["origin"] == "api-1"


def test_bridge_delivers_messages_from_other_processes():
    local = ChangeFanout(clock=FakeClock(NOW), origin="api-1")
    worker = ChangeFanout(clock=FakeClock(NOW), origin="worker-1")
    bridge = RedisEventBridge(local, client=FakeRedis(), channel="issues:test")
    issue = make_snapshot()
    observer = local.subscribe([issue.id])

    event = worker.publish(EventKind.UPDATED, issue)

    assert bridge.handle_message(event.model_dump_json())
    assert observer.get_nowait().origin == "worker-1"
    assert not bridge.handle_message("{not json")


def test_deleted_issues_release_their_bookkeeping(fanout):
    issues = [make_snapshot() for _ in range(5)]
    for issue in issues:
        fanout.publish(EventKind.CREATED, issue)
        fanout.publish(EventKind.UPDATED, make_snapshot(issue.id, version_id=2))
    assert fanout.tracked_issue_count() == 5

    for issue in issues:
        fanout.publish(EventKind.DELETED, make_snapshot(issue.id, version_id=2))

    assert fanout.tracked_issue_count() == 0


def test_relayed_update_after_delete_is_dropped(fanout):
    issue_id = uuid.uuid4()
    observer = fanout.subscribe([issue_id])
    fanout.publish(EventKind.DELETED, make_snapshot(issue_id, version_id=3))
    observer.get_nowait()

    assert not fanout.deliver_external(relayed(EventKind.UPDATED, make_snapshot(issue_id, version_id=4)))
    assert observer.pending() == 0
