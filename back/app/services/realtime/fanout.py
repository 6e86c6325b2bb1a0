"""
Change fan-out: delivers issue change events to subscribed observers.

Observers register per issue id (or on the feed, which sees every issue) and
belong to a session, normally one WebSocket connection. ``publish`` enqueues
synchronously; the engine calls it while still holding the issue's lock, so
each observer receives an issue's events in the order they were committed and
never an ``updated`` before the ``created``.
"""

# Standard library imports
import asyncio
from collections import OrderedDict, defaultdict
from collections.abc import Callable, Iterable
from uuid import UUID, uuid4

# Local application imports
from app.core.clock import Clock, SystemClock
from app.core.monitoring.logging import get_contextual_logger
from app.schemas.issues.event_schemas import EventKind, IssueEvent
from app.schemas.issues.issue_schemas import IssueResponse

logger = get_contextual_logger(__name__)

FEED = "*"

SubscriptionKey = UUID | str

# Deleted issue ids remembered to drop late relayed updates
RECENTLY_DELETED_LIMIT = 1024


class SubscriptionClosed(Exception):
    pass


class Subscription:
    """One observer: an unbounded queue of events plus the keys it listens on."""

    def __init__(self, fanout: "ChangeFanout", session_id: str):
        self.id = uuid4().hex
        self.session_id = session_id
        self.keys: set[SubscriptionKey] = set()
        self.closed = False
        self._fanout = fanout
        self._queue: asyncio.Queue[IssueEvent | None] = asyncio.Queue()

    def _deliver(self, event: IssueEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def subscribe(self, issue_id: SubscriptionKey) -> None:
        self._fanout._attach(self, issue_id)

    def unsubscribe(self, issue_id: SubscriptionKey) -> None:
        self._fanout._detach(self, issue_id)

    def pending(self) -> int:
        return self._queue.qsize()

    def get_nowait(self) -> IssueEvent:
        event = self._queue.get_nowait()
        if event is None:
            raise SubscriptionClosed(self.id)
        return event

    async def get(self) -> IssueEvent:
        event = await self._queue.get()
        if event is None:
            raise SubscriptionClosed(self.id)
        return event

    def close(self) -> None:
        if self.closed:
            return
        self._fanout.unsubscribe(self)
        self.closed = True
        # Wake any reader blocked in get()
        self._queue.put_nowait(None)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> IssueEvent:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration from None

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class ChangeFanout:
    """Per-issue observer registry owned by one process."""

    def __init__(self, clock: Clock | None = None, origin: str | None = None):
        self.clock = clock or SystemClock()
        self.origin = origin or uuid4().hex
        self._observers: dict[SubscriptionKey, set[Subscription]] = defaultdict(set)
        self._sessions: dict[str, set[Subscription]] = defaultdict(set)
        self._sequences: dict[UUID, int] = defaultdict(int)
        self._last_versions: dict[UUID, int] = {}
        self._deleted: OrderedDict[UUID, None] = OrderedDict()
        self._mirrors: list[Callable[[IssueEvent], None]] = []

    # Subscriptions

    def subscribe(
        self,
        issue_ids: Iterable[UUID] = (),
        *,
        session_id: str | None = None,
        feed: bool = False,
    ) -> Subscription:
        subscription = Subscription(self, session_id or uuid4().hex)
        self._sessions[subscription.session_id].add(subscription)
        for issue_id in issue_ids:
            self._attach(subscription, issue_id)
        if feed:
            self._attach(subscription, FEED)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        for key in list(subscription.keys):
            self._detach(subscription, key)
        session = self._sessions.get(subscription.session_id)
        if session is not None:
            session.discard(subscription)
            if not session:
                del self._sessions[subscription.session_id]

    def close_session(self, session_id: str) -> int:
        """Close every subscription of a session; returns how many were closed."""
        subscriptions = list(self._sessions.get(session_id, ()))
        for subscription in subscriptions:
            subscription.close()
        return len(subscriptions)

    def observer_count(self, issue_id: SubscriptionKey = FEED) -> int:
        return len(self._observers.get(issue_id, ()))

    def _attach(self, subscription: Subscription, key: SubscriptionKey) -> None:
        if subscription.closed:
            raise SubscriptionClosed(subscription.id)
        subscription.keys.add(key)
        self._observers[key].add(subscription)

    def _detach(self, subscription: Subscription, key: SubscriptionKey) -> None:
        subscription.keys.discard(key)
        observers = self._observers.get(key)
        if observers is not None:
            observers.discard(subscription)
            if not observers:
                del self._observers[key]

    # Publishing

    def add_mirror(self, mirror: Callable[[IssueEvent], None]) -> None:
        """Register a non-blocking callback that forwards local events elsewhere."""
        self._mirrors.append(mirror)

    def publish(self, kind: EventKind, issue: IssueResponse) -> IssueEvent:
        self._sequences[issue.id] += 1
        event = IssueEvent(
            kind=kind,
            issue_id=issue.id,
            sequence=self._sequences[issue.id],
            issue=issue,
            emitted_at=self.clock.now(),
            origin=self.origin,
        )
        self._dispatch(event)
        for mirror in self._mirrors:
            mirror(event)
        return event

    def deliver_external(self, event: IssueEvent) -> bool:
        """Deliver an event relayed from another process.

        Events this process emitted itself, older than what observers already
        saw for that issue, or about an issue already deleted are dropped.
        """
        if event.origin == self.origin or event.issue_id in self._deleted:
            return False
        last_version = self._last_versions.get(event.issue_id)
        if last_version is not None:
            stale = event.issue.version_id < last_version
            if event.kind is not EventKind.DELETED:
                stale = event.issue.version_id <= last_version
            if stale:
                logger.debug(f"Dropping stale relayed event for issue {event.issue_id} (v{event.issue.version_id})")
                return False
        self._dispatch(event)
        return True

    def tracked_issue_count(self) -> int:
        return len(self._sequences.keys() | self._last_versions.keys())

    def _dispatch(self, event: IssueEvent) -> None:
        targets = self._observers.get(event.issue_id, set()) | self._observers.get(FEED, set())
        for subscription in targets:
            subscription._deliver(event)

        if event.kind is EventKind.DELETED:
            self._forget(event.issue_id)
        else:
            self._last_versions[event.issue_id] = event.issue.version_id

    def _forget(self, issue_id: UUID) -> None:
        self._sequences.pop(issue_id, None)
        self._last_versions.pop(issue_id, None)
        self._deleted[issue_id] = None
        while len(self._deleted) > RECENTLY_DELETED_LIMIT:
            self._deleted.popitem(last=False)
