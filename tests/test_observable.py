"""Tests for observables, subscriptions, the change feed and live queries."""

import pytest

from clinicflow.core.change_feed import ChangeFeed
from clinicflow.core.observable import LiveQuery, Observable, Subscription


class TestSubscription:
    def test_unsubscribe_cancels_children_once(self):
        calls: list[str] = []
        parent = Subscription(lambda: calls.append("parent"))
        parent.add(Subscription(lambda: calls.append("child-1")))
        parent.add(Subscription(lambda: calls.append("child-2")))

        parent.unsubscribe()
        parent.unsubscribe()

        assert calls == ["child-1", "child-2", "parent"]
        assert parent.closed

    def test_child_added_after_close_is_cancelled(self):
        calls: list[str] = []
        parent = Subscription()
        parent.unsubscribe()

        child = parent.add(Subscription(lambda: calls.append("child")))

        assert child.closed
        assert calls == ["child"]

    def test_removed_child_survives_parent(self):
        parent = Subscription()
        child = parent.add(Subscription())
        parent.remove(child)

        parent.unsubscribe()

        assert not child.closed


class TestObservable:
    def test_replays_last_value_to_new_observer(self):
        stream: Observable[int] = Observable()
        stream.emit(1)
        stream.emit(2)

        received: list[int] = []
        stream.subscribe(received.append)

        assert received == [2]

    def test_no_delivery_after_unsubscribe(self):
        stream: Observable[int] = Observable()
        received: list[int] = []
        subscription = stream.subscribe(received.append)

        stream.emit(1)
        subscription.unsubscribe()
        stream.emit(2)

        assert received == [1]
        assert stream.observer_count == 0

    def test_errors_reach_error_callback(self):
        stream: Observable[int] = Observable()
        errors: list[Exception] = []
        stream.subscribe(lambda _: None, errors.append)

        stream.fail(RuntimeError("boom"))

        assert len(errors) == 1


class TestChangeFeed:
    def test_publish_reaches_topic_listeners_only(self):
        feed = ChangeFeed()
        seen: list[str] = []
        feed.subscribe("patients:t-1", seen.append)
        feed.subscribe("patients:t-2", seen.append)

        feed.publish("patients:t-1")

        assert seen == ["patients:t-1"]

    def test_unsubscribe_removes_listener(self):
        feed = ChangeFeed()
        subscription = feed.subscribe("topic", lambda _: None)
        assert feed.listener_count("topic") == 1

        subscription.unsubscribe()

        assert feed.listener_count("topic") == 0

    def test_failing_listener_does_not_block_others(self):
        feed = ChangeFeed()
        seen: list[str] = []

        def broken(_topic: str) -> None:
            raise RuntimeError("listener bug")

        feed.subscribe("topic", broken)
        feed.subscribe("topic", seen.append)

        feed.publish("topic")

        assert seen == ["topic"]


@pytest.mark.asyncio
class TestLiveQuery:
    async def test_initial_snapshot_and_refresh_on_publish(self):
        feed = ChangeFeed()
        state = {"value": 1}

        async def fetch() -> int:
            return state["value"]

        query = LiveQuery(feed, ["counter"], fetch)
        received: list[int] = []
        subscription = query.subscribe(received.append)
        await query.wait_idle()

        state["value"] = 2
        feed.publish("counter")
        await query.wait_idle()

        assert received == [1, 2]
        subscription.unsubscribe()

    async def test_snapshots_follow_write_order(self):
        feed = ChangeFeed()
        state = {"value": 0}

        async def fetch() -> int:
            return state["value"]

        query = LiveQuery(feed, ["counter"], fetch)
        received: list[int] = []
        query.subscribe(received.append)
        await query.wait_idle()

        for value in range(1, 4):
            state["value"] = value
            feed.publish("counter")
        await query.wait_idle()

        assert received == sorted(received)
        assert received[-1] == 3

    async def test_last_unsubscribe_releases_feed_listener(self):
        feed = ChangeFeed()

        async def fetch() -> str:
            return "snapshot"

        query = LiveQuery(feed, ["a", "b"], fetch)
        received: list[str] = []
        subscription = query.subscribe(received.append)
        await query.wait_idle()
        assert feed.listener_count("a") == 1

        subscription.unsubscribe()
        feed.publish("a")
        await query.wait_idle()

        assert feed.listener_count("a") == 0
        assert feed.listener_count("b") == 0
        assert received == ["snapshot"]
        assert not query.active

    async def test_fetch_failure_is_reported(self):
        feed = ChangeFeed()

        async def fetch() -> int:
            raise RuntimeError("store down")

        query = LiveQuery(feed, ["t"], fetch)
        errors: list[Exception] = []
        query.subscribe(lambda _: None, errors.append)
        await query.wait_idle()

        assert len(errors) == 1
        assert str(errors[0]) == "store down"
