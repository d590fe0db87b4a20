"""In-process fan-out of committed queue changes to connected observers.

Delivery is best-effort and at-most-once. There is no backlog: an observer
that subscribes late (or reconnects) must refetch the queue to catch up.
Events for the same entry reach observers in commit order because the
emission lock is taken just before commit and released after fan-out.
Observers run on the committing thread and must not issue write commands
from inside the callback.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping

logger = logging.getLogger(__name__)


class EventType(Enum):
    ENTRY_ADDED = "entry-added"
    ENTRY_UPDATED = "entry-updated"
    ENTRY_DELETED = "entry-deleted"
    ENTRY_REORDERED = "entry-reordered"
    CHAT_MESSAGE_ADDED = "chat-message-added"
    INTAKE_PAUSED_CHANGED = "intake-paused-changed"


@dataclass(frozen=True)
class ChangeEvent:
    type: EventType
    entry_id: str | None = None
    payload: Mapping = field(default_factory=dict)

    def __post_init__(self):
        # Shared by every observer, so read-only
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


Observer = Callable[[ChangeEvent], None]


class ChangeBroadcaster:
    """Publishes change events to every subscribed observer."""

    def __init__(self):
        self._observers: list[Observer] = []
        self._observers_lock = threading.Lock()
        self._emission_lock = threading.RLock()

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register an observer. Returns a handle that unsubscribes it."""
        with self._observers_lock:
            self._observers.append(callback)

        def unsubscribe() -> None:
            with self._observers_lock:
                if callback in self._observers:
                    self._observers.remove(callback)

        return unsubscribe

    @property
    def observer_count(self) -> int:
        with self._observers_lock:
            return len(self._observers)

    def publish(self, event: ChangeEvent) -> None:
        """Emit a single event outside of any transaction."""
        with self._emission_lock:
            self._deliver(event)

    @contextmanager
    def emitting(self):
        """Hold the emission lock across a state change and its publish."""
        with self._emission_lock:
            yield

    def outbox(self) -> "Outbox":
        return Outbox(self)

    def _deliver(self, event: ChangeEvent) -> None:
        with self._observers_lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception(f"Observer failed on {event.type.value} for {event.entry_id}")


class Outbox:
    """Events collected during one transaction, emitted once it commits.

    Call seal() as the last step inside the transaction, deliver() after the
    commit, and release() in a finally block.
    """

    def __init__(self, broadcaster: ChangeBroadcaster):
        self.broadcaster = broadcaster
        self.events: list[ChangeEvent] = []
        self._held = False

    def add(self, event_type: EventType, entry_id: str | None = None, **payload) -> None:
        self.events.append(ChangeEvent(event_type, entry_id, payload))

    def seal(self) -> None:
        if self.events and not self._held:
            self.broadcaster._emission_lock.acquire()
            self._held = True

    def deliver(self) -> None:
        for event in self.events:
            self.broadcaster._deliver(event)
        self.events = []

    def release(self) -> None:
        if self._held:
            self._held = False
            self.broadcaster._emission_lock.release()
