"""Error taxonomy shared by the repository, consistency layer and state machine."""

from __future__ import annotations

from typing import Any, Optional


class DockvaultError(Exception):
    """Base class for every error raised by the storage core."""


class ValidationError(DockvaultError, ValueError):
    """Malformed input; rejected before any store access."""


class NotFoundError(DockvaultError, LookupError):
    """No record or object at the expected key."""


class ConflictError(DockvaultError):
    """A precondition did not hold against the current stored truth.

    ``result`` carries the outcome that was written anyway (for example the
    PURGED tombstone produced by a self-healing restore) so handlers can render
    the true state next to the conflict.
    """

    def __init__(self, message: str, *, result: Optional[Any] = None) -> None:
        super().__init__(message)
        self.result = result


class TransientError(DockvaultError):
    """Store unavailable or timed out; safe to retry the whole operation."""


class IntegrityError(DockvaultError):
    """A caller broke an encoding or state-machine precondition."""


class ConditionFailedError(DockvaultError):
    """Raised by metadata indexes when a conditional write loses a race."""
