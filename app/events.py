"""In-process change feed for recordings and transcripts.

Services publish a ``ChangeEvent`` after each committed insert, update or
delete. Subscribers (e.g. ``RecordingsMonitor``) are filtered by table and,
optionally, by owner. Delivery is best-effort: a failing callback is logged
and does not affect other subscribers or the publisher.
"""

import itertools
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

logger = logging.getLogger("callcoach")

TABLE_RECORDINGS = "recordings"
TABLE_TRANSCRIPTS = "transcripts"

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    record_id: str
    user_id: int | None = None
    payload: dict = field(default_factory=dict)


class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``; call ``unsubscribe`` to stop delivery."""

    def __init__(self, feed: "ChangeFeed", sub_id: int) -> None:
        self._feed = feed
        self._id = sub_id
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self._id)
            self.active = False


class ChangeFeed:
    """Thread-safe publish/subscribe of ``ChangeEvent``s."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: dict[int, tuple[frozenset[str], int | None, Callable[[ChangeEvent], None]]] = {}

    def subscribe(
        self,
        tables: Iterable[str],
        callback: Callable[[ChangeEvent], None],
        user_id: int | None = None,
    ) -> Subscription:
        sub_id = next(self._ids)
        with self._lock:
            self._subscribers[sub_id] = (frozenset(tables), user_id, callback)
        return Subscription(self, sub_id)

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = [
                cb
                for tables, user_id, cb in self._subscribers.values()
                if event.table in tables and (user_id is None or user_id == event.user_id)
            ]
        for cb in targets:
            try:
                cb(event)
            except Exception:
                logger.exception("Change feed subscriber failed for %s %s", event.table, event.event_type)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _remove(self, sub_id: int) -> None:
        with self._lock:
            self._subscribers.pop(sub_id, None)


_change_feed: ChangeFeed | None = None


def get_change_feed() -> ChangeFeed:
    """Get singleton change feed instance."""
    global _change_feed
    if _change_feed is None:
        _change_feed = ChangeFeed()
    return _change_feed
