"""Observable streams with explicit subscribe/unsubscribe lifecycle.

Streams deliver single values that replace the previous one; there is no
buffering and no back-pressure. A subscription stays active until
``unsubscribe()`` is called, which also cancels every child subscription
attached to it.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

if TYPE_CHECKING:
    from clinicflow.core.change_feed import ChangeFeed

logger = structlog.get_logger(__name__)

T = TypeVar("T")

OnNext = Callable[[T], None]
OnError = Callable[[Exception], None]


class Subscription:
    """Handle returned by ``subscribe``; owns optional child subscriptions."""

    def __init__(self, teardown: Callable[[], None] | None = None):
        self._teardown = teardown
        self._children: list[Subscription] = []
        self.closed = False

    def add(self, child: "Subscription") -> "Subscription":
        """Attach a child that is cancelled together with this subscription."""
        if self.closed:
            child.unsubscribe()
        else:
            self._children.append(child)
        return child

    def remove(self, child: "Subscription") -> None:
        """Detach a child without cancelling it."""
        if child in self._children:
            self._children.remove(child)

    def unsubscribe(self) -> None:
        """Cancel this subscription and its children. Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        children, self._children = self._children, []
        for child in children:
            child.unsubscribe()
        if self._teardown is not None:
            teardown, self._teardown = self._teardown, None
            teardown()


class Observable(Generic[T]):
    """Multicast stream that remembers the last emitted value."""

    def __init__(self) -> None:
        self._observers: dict[int, tuple[OnNext[T], OnError | None]] = {}
        self._next_key = 0
        self._has_value = False
        self._value: T | None = None

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def value(self) -> T | None:
        return self._value

    def subscribe(self, on_next: OnNext[T], on_error: OnError | None = None) -> Subscription:
        """Register callbacks; the current value, if any, is replayed at once."""
        key = self._next_key
        self._next_key += 1
        self._observers[key] = (on_next, on_error)
        first = len(self._observers) == 1

        subscription = Subscription(lambda: self._remove(key))
        if first:
            self._on_first_subscriber()
        if self._has_value and key in self._observers:
            on_next(self._value)  # type: ignore[arg-type]
        return subscription

    def emit(self, value: T) -> None:
        """Push a new value to every observer."""
        self._has_value = True
        self._value = value
        for on_next, _ in list(self._observers.values()):
            on_next(value)

    def fail(self, exc: Exception) -> None:
        """Report an error to every observer that registered an error callback."""
        for _, on_error in list(self._observers.values()):
            if on_error is not None:
                on_error(exc)
            else:
                logger.error("observable_error_unhandled", error=str(exc))

    def _remove(self, key: int) -> None:
        self._observers.pop(key, None)
        if not self._observers:
            self._on_last_unsubscribe()

    def _on_first_subscriber(self) -> None:
        """Hook for lazily started sources."""

    def _on_last_unsubscribe(self) -> None:
        """Hook for releasing sources when nobody listens."""


class LiveQuery(Observable[T]):
    """Re-runs a store query whenever one of its change-feed topics fires.

    Refreshes are serialized, so snapshots arrive in the order the writes
    were committed. The feed listener is registered while at least one
    observer is subscribed and removed when the last one leaves.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        topics: Iterable[str],
        fetch: Callable[[], Awaitable[T]],
        name: str = "live_query",
    ):
        super().__init__()
        self._feed = feed
        self._topics = list(topics)
        self._fetch = fetch
        self._name = name
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._feed_subscription: Subscription | None = None

    @property
    def active(self) -> bool:
        return self._feed_subscription is not None

    async def refresh(self) -> None:
        """Run the query once and emit its result."""
        async with self._lock:
            try:
                snapshot = await self._fetch()
            except Exception as e:
                logger.warning("live_query_refresh_failed", query=self._name, error=str(e))
                self.fail(e)
                return
            if self.active:
                self.emit(snapshot)

    async def wait_idle(self) -> None:
        """Wait until every scheduled refresh has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule_refresh(self, _topic: str | None = None) -> None:
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_first_subscriber(self) -> None:
        parent = Subscription()
        for topic in self._topics:
            parent.add(self._feed.subscribe(topic, self._schedule_refresh))
        self._feed_subscription = parent
        self._schedule_refresh()

    def _on_last_unsubscribe(self) -> None:
        if self._feed_subscription is not None:
            self._feed_subscription.unsubscribe()
            self._feed_subscription = None
        for task in list(self._tasks):
            task.cancel()
        self._has_value = False
        self._value = None
