from __future__ import annotations

from typing import List, Optional


# PUBLIC_INTERFACE
class TaskPoetError(Exception):
    """Base class for every error raised by taskpoet itself."""


# PUBLIC_INTERFACE
class TaskValidationError(TaskPoetError, ValueError):
    """
    A task violates a write-time invariant (empty description, slash in the ID,
    hide_until after due, self reference, duplicate parents, edited completion).
    Never retried.
    """


# PUBLIC_INTERFACE
class AlreadyExistsError(TaskPoetError):
    """The (plugin_id, id) pair is already used by a task in some state."""

    def __init__(self, key: str) -> None:
        super().__init__(f"task already exists: {key}")
        self.key = key


# PUBLIC_INTERFACE
class NotFoundError(TaskPoetError, LookupError):
    """A lookup, edit or purge target does not exist."""


# PUBLIC_INTERFACE
class AmbiguousError(TaskPoetError):
    """
    A partial ID matched more than one task.

    The matching keys are kept on `candidates` so callers can ask for more of
    the ID.
    """

    def __init__(self, partial_id: str, candidates: Optional[List[str]] = None) -> None:
        self.partial_id = partial_id
        self.candidates = list(candidates or [])
        super().__init__(
            f"more than 1 match for {partial_id!r}, please try using more of the ID. "
            f"Returned: {self.candidates}"
        )


# PUBLIC_INTERFACE
class InvalidExpressionError(TaskPoetError, ValueError):
    """A date or duration expression could not be resolved."""
