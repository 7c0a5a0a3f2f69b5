"""In-process change notifications published after committed writes."""

from collections import defaultdict
from collections.abc import Callable

import structlog

from clinicflow.core.observable import Subscription

logger = structlog.get_logger(__name__)

Listener = Callable[[str], None]


def user_topic(account_id: str) -> str:
    return f"users:{account_id}"


def admin_topic(account_id: str) -> str:
    return f"user_roles:{account_id}"


def tenant_topic(tenant_id: str) -> str:
    return f"tenants:{tenant_id}"


def members_topic(tenant_id: str) -> str:
    return f"tenants:{tenant_id}:members"


def patients_topic(tenant_id: str) -> str:
    return f"patients:{tenant_id}"


def records_topic(tenant_id: str, patient_id: str) -> str:
    return f"medical_records:{tenant_id}:{patient_id}"


class ChangeFeed:
    """Topic based fan-out of "something changed" signals.

    Listeners receive only the topic name and re-read the store themselves,
    so a missed or coalesced notification never leaves a stale snapshot.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, dict[int, Listener]] = defaultdict(dict)
        self._next_key = 0

    def subscribe(self, topic: str, listener: Listener) -> Subscription:
        """Register a listener; returns a Subscription that removes it."""
        key = self._next_key
        self._next_key += 1
        self._listeners[topic][key] = listener

        def _remove() -> None:
            listeners = self._listeners.get(topic)
            if listeners is None:
                return
            listeners.pop(key, None)
            if not listeners:
                del self._listeners[topic]

        return Subscription(_remove)

    def publish(self, *topics: str) -> None:
        """Notify every listener of the given topics."""
        for topic in topics:
            for listener in list(self._listeners.get(topic, {}).values()):
                try:
                    listener(topic)
                except Exception as e:
                    logger.error("change_listener_failed", topic=topic, error=str(e))

    def listener_count(self, topic: str) -> int:
        return len(self._listeners.get(topic, {}))


_change_feed: ChangeFeed | None = None


def get_change_feed() -> ChangeFeed:
    """Get or create the process-wide change feed."""
    global _change_feed

    if _change_feed is None:
        _change_feed = ChangeFeed()

    return _change_feed
