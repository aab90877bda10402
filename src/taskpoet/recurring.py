from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Iterable, List, Sequence, Tuple

from .durations import parse_duration
from .models import Task, TaskState

if TYPE_CHECKING:
    from .repositories import TaskRepository

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class RecurringTask:
    """A description that should be redone every `frequency`."""

    description: str
    frequency: timedelta


# PUBLIC_INTERFACE
def check_recurring(repo: TaskRepository, recurring: Iterable[RecurringTask]) -> List[Task]:
    """
    Add an active task for every recurring entry that is neither pending nor
    completed within its last frequency window.

    Returns:
        The tasks that were added.
    """
    now = repo.now()
    completed = repo.list(TaskState.COMPLETED.path)
    pending = {t.description for t in repo.list(TaskState.ACTIVE.path)}
    added: List[Task] = []
    for recur in recurring:
        window_start = now - recur.frequency
        done_recently = any(
            t.description == recur.description and t.completed is not None and t.completed > window_start
            for t in completed
        )
        if done_recently or recur.description in pending:
            continue
        added.append(repo.add(Task(description=recur.description)))
        logger.info("added recurring task %r", recur.description)
    return added


# PUBLIC_INTERFACE
def parse_recurring(entries: Sequence[Tuple[str, str]]) -> List[RecurringTask]:
    """
    Build recurring entries from (description, frequency expression) pairs,
    e.g. ("water the plants", "weekly").

    Raises:
        InvalidExpressionError: if a frequency does not parse.
    """
    return [RecurringTask(description=d, frequency=parse_duration(f)) for d, f in entries]
