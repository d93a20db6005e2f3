from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
import itertools

logger = logging.getLogger(__name__)

WILDCARD = "*"

@dataclass(frozen=True)
class ChangeEvent:
    """A row-level change notification"""
    table: str
    event: str  # INSERT | UPDATE | DELETE
    new: Dict[str, Any]
    old: Optional[Dict[str, Any]] = None
    committed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": "change",
            "table": self.table,
            "event": self.event,
            "new": self.new,
            "old": self.old,
            "timestamp": self.committed_at.isoformat(),
        }

class Subscription:
    def __init__(self, feed: "ChangeFeed", key: int, table: str, event: str):
        self._feed = feed
        self.key = key
        self.table = table
        self.event = event

    def unsubscribe(self):
        self._feed._remove(self.key)

class ChangeFeed:
    """In-process change notification keyed by table name and event type.

    Publishers call ``publish`` from any thread after their write commits.
    Callbacks run on the publishing thread and must not block; async
    consumers hand events over to their own loop.
    """

    def __init__(self):
        self._subscribers: Dict[int, Tuple[str, str, Callable[[ChangeEvent], None]]] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, table: str, event: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        event = event.upper() if event != WILDCARD else event
        key = next(self._counter)
        with self._lock:
            self._subscribers[key] = (table, event, callback)
        return Subscription(self, key, table, event)

    def _remove(self, key: int):
        with self._lock:
            self._subscribers.pop(key, None)

    def publish(self, change: ChangeEvent) -> int:
        """Deliver to matching subscribers; returns how many were notified"""
        with self._lock:
            targets = [
                callback for table, event, callback in self._subscribers.values()
                if table in (change.table, WILDCARD) and event in (change.event, WILDCARD)
            ]

        delivered = 0
        for callback in targets:
            try:
                callback(change)
                delivered += 1
            except Exception:
                # One broken subscriber must not stop the others
                logger.exception("Change feed subscriber failed for %s/%s", change.table, change.event)
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

# Global change feed instance
change_feed = ChangeFeed()
