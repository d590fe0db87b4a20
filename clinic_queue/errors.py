"""Typed failures returned to callers of the queue engine."""


class QueueError(Exception):
    """Base class for all queue engine failures."""

    code = "ERROR"
    retryable = False

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(QueueError):
    """Raised when a command's input is missing fields or malformed."""

    code = "VALIDATION"


class NotFoundError(QueueError):
    """Raised when an entry or person id is unknown."""

    code = "NOT_FOUND"


class ConflictError(QueueError):
    """Raised when a change would break a queue invariant."""

    code = "CONFLICT"


class LockTimeoutError(QueueError):
    """Raised when the write lock could not be acquired in time.

    Transient: callers should retry with backoff.
    """

    code = "LOCK_TIMEOUT"
    retryable = True
