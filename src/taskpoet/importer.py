"""
Import of TaskWarrior exports (`task export`).

See https://taskwarrior.org/docs/design/task/ for the format.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import AlreadyExistsError, TaskPoetError
from .models import Comment, Task, local_now
from .repositories import TaskRepository

logger = logging.getLogger(__name__)

TASKWARRIOR_TIME_FORMAT = "%Y%m%dT%H%M%SZ"


def parse_taskwarrior_time(value: Any) -> Any:
    """Parse '20060102T150405Z' strings as UTC; pass anything else through."""
    if isinstance(value, str):
        return datetime.strptime(value, TASKWARRIOR_TIME_FORMAT).replace(tzinfo=timezone.utc)
    return value


class TaskWarriorAnnotation(BaseModel):
    """A TaskWarrior annotation (note)."""

    entry: Optional[datetime] = None
    description: str = ""

    @field_validator("entry", mode="before")
    @classmethod
    def parse_entry(cls, v: Any) -> Any:
        return parse_taskwarrior_time(v)


# PUBLIC_INTERFACE
class TaskWarriorTask(BaseModel):
    """One item of a TaskWarrior export."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    uuid: str = ""
    description: str = ""
    status: str = ""
    entry: Optional[datetime] = None
    modified: Optional[datetime] = None
    due: Optional[datetime] = None
    wait: Optional[datetime] = None
    end: Optional[datetime] = None
    reviewed: Optional[datetime] = None
    until: Optional[datetime] = None
    mask: str = ""
    urgency: float = 0.0
    tags: List[str] = Field(default_factory=list)
    annotations: List[TaskWarriorAnnotation] = Field(default_factory=list)

    @field_validator("entry", "modified", "due", "wait", "end", "reviewed", "until", mode="before")
    @classmethod
    def parse_times(cls, v: Any) -> Any:
        return parse_taskwarrior_time(v)

    def to_task(self) -> Task:
        """
        Map onto a taskpoet Task.

        A wait later than due is pulled back to one minute before due so the
        result passes the hide_until <= due check.
        """
        hide_until = self.wait
        if self.wait is not None and self.due is not None and self.wait > self.due:
            hide_until = self.due - timedelta(minutes=1)
        return Task(
            id=self.uuid or str(uuid.uuid4()),
            description=self.description,
            tags=list(self.tags),
            due=self.due,
            hide_until=hide_until,
            completed=self.end,
            reviewed=self.reviewed,
            cancel_after=self.until,
            deleted=self.end if self.status == "deleted" else None,
            added=self.entry or local_now(),
            comments=[
                Comment(added=a.entry or local_now(), text=a.description) for a in self.annotations
            ],
        )


_EXPORT = TypeAdapter(List[TaskWarriorTask])


# PUBLIC_INTERFACE
def load_taskwarrior_export(raw: Union[str, bytes]) -> List[TaskWarriorTask]:
    """Parse the JSON array produced by `task export`."""
    return _EXPORT.validate_json(raw)


# PUBLIC_INTERFACE
@dataclass
class ImportResult:
    """Outcome of an import: how many items landed and what was skipped."""

    imported: int = 0
    warnings: List[str] = field(default_factory=list)


# PUBLIC_INTERFACE
def import_taskwarrior(repo: TaskRepository, items: Iterable[TaskWarriorTask]) -> ImportResult:
    """
    Add TaskWarrior items to the repository.

    Items already present count as imported, so running an import twice is
    harmless. Recurring templates (items with a mask) are skipped. No default
    template is applied to imported tasks.

    Returns:
        ImportResult with the imported count and one warning per skipped item.
    """
    result = ImportResult()
    no_defaults = Task()
    for item in items:
        if item.mask:
            msg = f"skipping item with recurrence mask, not supported yet: {item.description}"
            logger.warning(msg)
            result.warnings.append(msg)
            continue
        try:
            repo.add(item.to_task(), defaults=no_defaults)
        except AlreadyExistsError:
            result.imported += 1
        except (TaskPoetError, ValidationError) as e:
            msg = f"error importing task: {item.description} ({e})"
            logger.warning(msg)
            result.warnings.append(msg)
        else:
            result.imported += 1
    logger.info("imported %d of the TaskWarrior items, %d warnings", result.imported, len(result.warnings))
    return result
