from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import TaskValidationError

# PluginID used for tasks created locally rather than synced from a plugin
DEFAULT_PLUGIN_ID = "builtin"


def local_now() -> datetime:
    """Return the current time as a timezone-aware local datetime."""
    return datetime.now().astimezone()


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Interpret naive datetimes as local time; leave aware ones untouched."""
    if value is None or value.tzinfo is not None:
        return value
    return value.astimezone()


# PUBLIC_INTERFACE
class EffortImpact(IntEnum):
    """
    Effort/impact quadrant of a task. The numeric values are persisted and are
    set in stone:

    - 0: unset
    - 1: low effort, high impact (sweet spot)
    - 2: high effort, high impact (homework)
    - 3: low effort, low impact (busywork)
    - 4: high effort, low impact (charity)
    """

    UNSET = 0
    HIGH = 1
    MEDIUM = 2
    LOW = 3
    AVOID = 4

    @property
    def label(self) -> str:
        return _EFFORT_IMPACT_TEXT[self]

    @property
    def emoji(self) -> str:
        return _EFFORT_IMPACT_EMOJI[self]


_EFFORT_IMPACT_TEXT = {
    EffortImpact.UNSET: "Unset",
    EffortImpact.HIGH: "Low Effort, High Impact",
    EffortImpact.MEDIUM: "High Effort, High Impact",
    EffortImpact.LOW: "Low Effort, Low Impact",
    EffortImpact.AVOID: "High Effort, Low Impact",
}

_EFFORT_IMPACT_EMOJI = {
    EffortImpact.UNSET: "🟣",
    EffortImpact.HIGH: "🟢",
    EffortImpact.MEDIUM: "🟡",
    EffortImpact.LOW: "🔴",
    EffortImpact.AVOID: "💀",
}


# PUBLIC_INTERFACE
class TaskState(str, Enum):
    """Lifecycle state of a task. Derived from its timestamps, never stored."""

    ACTIVE = "active"
    COMPLETED = "completed"
    DELETED = "deleted"

    @property
    def path(self) -> str:
        """Key prefix for this state, e.g. '/active'."""
        return f"/{self.value}"

    @classmethod
    def parse(cls, raw: str) -> TaskState:
        """Accept both 'active' and '/active' spellings."""
        try:
            return cls(raw.strip().strip("/"))
        except ValueError as e:
            raise TaskValidationError(f"unknown task state: {raw!r}") from e


# PUBLIC_INTERFACE
def make_key(state: TaskState, plugin_id: str, task_id: str) -> str:
    """Build the storage key '/<state>/<plugin_id>/<id>'."""
    return f"{state.path}/{plugin_id or DEFAULT_PLUGIN_ID}/{task_id}"


# PUBLIC_INTERFACE
class Comment(BaseModel):
    """A short timestamped note attached to a task."""

    added: datetime = Field(default_factory=local_now)
    text: str

    @field_validator("added", mode="after")
    @classmethod
    def normalize_added(cls, v: datetime) -> datetime:
        return as_aware(v)  # type: ignore[return-value]

    @classmethod
    def new(cls, text: str) -> Comment:
        if not text:
            raise TaskValidationError("text must not be empty")
        return cls(text=text)


# PUBLIC_INTERFACE
class Task(BaseModel):
    """
    A single action item.

    The state (active/completed/deleted) is not a field: it follows from which
    of `deleted` and `completed` is set, with deleted taking precedence over
    completed, and is encoded in the storage key.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default="", description="Identifier, unique per plugin_id; must not contain '/'")
    plugin_id: str = Field(default=DEFAULT_PLUGIN_ID, description="Namespace for synced tasks")
    description: str = Field(default="", description="What needs doing")
    due: Optional[datetime] = None
    hide_until: Optional[datetime] = Field(default=None, description="Hidden from listings until then")
    cancel_after: Optional[datetime] = None
    completed: Optional[datetime] = None
    reviewed: Optional[datetime] = None
    deleted: Optional[datetime] = None
    added: datetime = Field(default_factory=local_now)
    effort_impact: EffortImpact = EffortImpact.UNSET
    children: List[str] = Field(default_factory=list)
    parents: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    project: str = ""
    urgency: float = 0.0

    @field_validator(
        "due", "hide_until", "cancel_after", "completed", "reviewed", "deleted", "added", mode="after"
    )
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_aware(v)

    @field_validator("tags", mode="after")
    @classmethod
    def sort_tags(cls, v: List[str]) -> List[str]:
        return sorted(set(v))

    @field_validator("plugin_id", mode="after")
    @classmethod
    def default_plugin_id(cls, v: str) -> str:
        return v or DEFAULT_PLUGIN_ID

    @property
    def state(self) -> TaskState:
        if self.deleted is not None:
            return TaskState.DELETED
        if self.completed is not None:
            return TaskState.COMPLETED
        return TaskState.ACTIVE

    @property
    def short_id(self) -> str:
        return self.id[:5]

    def key_path(self) -> str:
        """Storage key for the task in its current state."""
        return make_key(self.state, self.plugin_id, self.id)

    def check(self) -> None:
        """
        Enforce the write-time invariants.

        Raises:
            TaskValidationError: on the first violated invariant.
        """
        if not self.description:
            raise TaskValidationError("missing description for task")
        if "/" in self.id:
            raise TaskValidationError("ID cannot contain a slash (/)")
        if self.hide_until is not None and self.due is not None and self.hide_until > self.due:
            raise TaskValidationError("hide_until cannot be later than due")
        if self.id in self.parents:
            raise TaskValidationError("self id is set in the parents")
        if self.id in self.children:
            raise TaskValidationError("self id is set in the children")
        if len(set(self.parents)) != len(self.parents):
            raise TaskValidationError("found duplicate ids in the parents field")

    def add_comment(self, text: str) -> None:
        self.comments = [*self.comments, Comment.new(text)]

    def description_details(self) -> str:
        """Description followed by one line per comment."""
        lines = [self.description]
        for c in self.comments:
            lines.append(f" {c.added:%Y-%m-%d} - {c.text}")
        return "\n".join(lines).strip()

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> Task:
        return cls.model_validate_json(raw)
