# app/core/change_feed.py
"""
Row-level change feed for the orders table.

Listeners register explicitly and receive ChangeEvent objects shaped like
Supabase `postgres_changes` payloads, whether the event was published
in-process by the order service or relayed by the realtime bridge.
"""

import logging
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Literal

logger = logging.getLogger(__name__)

EventType = Literal["INSERT", "UPDATE", "DELETE"]
Listener = Callable[["ChangeEvent"], None]


@dataclass(frozen=True)
class ChangeEvent:
    type: EventType
    table: str = "orders"
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_realtime_payload(cls, payload: dict[str, Any]) -> "ChangeEvent":
        """
        Accept both realtime-py (`data.type / record / old_record`) and
        supabase-js style (`eventType / new / old`) payloads.

        Raises:
            ValueError: if the event type is missing or unknown.
        """
        data = payload.get("data", payload)
        kind = data.get("type") or data.get("eventType")
        if kind not in ("INSERT", "UPDATE", "DELETE"):
            raise ValueError(f"Unknown change event type: {kind!r}")
        return cls(
            type=kind,
            table=data.get("table", "orders"),
            new=dict(data.get("record") or data.get("new") or {}),
            old=dict(data.get("old_record") or data.get("old") or {}),
        )


class ChangeFeed:
    """
    Synchronous publish/subscribe.

    publish() calls every listener in registration order on the caller's
    thread. A failing listener is logged and does not stop the others.
    """

    def __init__(self):
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Change listener %r failed on %s", listener, event.type)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


@lru_cache
def get_change_feed() -> ChangeFeed:
    """Process-wide feed shared by the order service and its listeners."""
    return ChangeFeed()
