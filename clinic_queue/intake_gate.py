"""Administrative pause for consultation intake.

The flag lives in process memory only and starts out running. A restart
resumes intake; it is never persisted.
"""

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class IntakeState:
    is_paused: bool = False
    reason: str = ""


class IntakeGate:
    """Blocks WAITING -> IN_CONSULTATION while paused."""

    def __init__(self):
        self._lock = threading.Lock()
        self._state = IntakeState()

    @property
    def state(self) -> IntakeState:
        with self._lock:
            return self._state

    @property
    def is_paused(self) -> bool:
        return self.state.is_paused

    def set(self, is_paused: bool, reason: str = "") -> bool:
        """Update the pause flag. Returns True if anything changed."""
        new_state = IntakeState(bool(is_paused), (reason or "").strip() if is_paused else "")
        with self._lock:
            changed = new_state != self._state
            self._state = new_state
        return changed
