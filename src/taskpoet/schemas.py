from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Comment, EffortImpact, Task, TaskState

# Incoming dates are an ISO8601 date/datetime or a calendar expression ("eom", "2 weeks")
DateInput = Union[datetime, str]


def _parse_date_input(value: Optional[Union[date, datetime, str]]) -> Optional[DateInput]:
    """
    Normalize a date field.
    - datetime is returned as-is; a date is promoted to 00:00 of that day.
    - ISO8601 strings are parsed to datetime.
    - Any other non-empty string is kept as a calendar expression and resolved
      by the router against the repository clock.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 0, 0, 0)
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            # fromisoformat only learned the 'Z' suffix in 3.11
            return datetime.fromisoformat(s[:-1] + "+00:00" if s.endswith("Z") else s)
        except ValueError:
            return s
    raise ValueError("Invalid type for date; expected date, datetime, ISO8601 string or calendar expression.")


def _strip_description(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not s:
        raise ValueError("description must not be empty")
    return s


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "description": "Pay rent",
                "due": "eom",
                "tags": ["home"],
                "effort_impact": 1,
            }
        }
    )

    id: Optional[str] = Field(default=None, description="Task ID; a uuid4 is assigned when omitted")
    plugin_id: Optional[str] = Field(default=None, description="Plugin namespace; 'builtin' when omitted")
    description: str = Field(..., description="What needs doing", min_length=1)
    due: Optional[DateInput] = Field(default=None, description="ISO8601 date/datetime or calendar expression")
    hide_until: Optional[DateInput] = Field(default=None, description="Hidden from listings until then")
    cancel_after: Optional[DateInput] = Field(default=None, description="No longer relevant after then")
    effort_impact: EffortImpact = Field(default=EffortImpact.UNSET, description="0 unset .. 4 high effort, low impact")
    tags: List[str] = Field(default_factory=list)
    parents: List[str] = Field(default_factory=list)
    children: List[str] = Field(default_factory=list)
    project: str = ""

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        return _strip_description(v)  # type: ignore[return-value]

    @field_validator("due", "hide_until", "cancel_after", mode="before")
    @classmethod
    def parse_dates(cls, v: Optional[Union[date, datetime, str]]) -> Optional[DateInput]:
        return _parse_date_input(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for editing an existing task.
    All fields are optional; omitted fields keep their stored values.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "description": "Pay rent and utilities",
                "hide_until": "tomorrow",
            }
        }
    )

    description: Optional[str] = Field(default=None, description="What needs doing")
    due: Optional[DateInput] = None
    hide_until: Optional[DateInput] = None
    cancel_after: Optional[DateInput] = None
    effort_impact: Optional[EffortImpact] = None
    tags: Optional[List[str]] = None
    parents: Optional[List[str]] = None
    children: Optional[List[str]] = None
    project: Optional[str] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_description(v)

    @field_validator("due", "hide_until", "cancel_after", mode="before")
    @classmethod
    def parse_dates(cls, v: Optional[Union[date, datetime, str]]) -> Optional[DateInput]:
        return _parse_date_input(v)


# PUBLIC_INTERFACE
class CommentCreate(BaseModel):
    """Schema for adding a comment to a task."""

    text: str = Field(..., min_length=1, description="Comment text")


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task.
    """

    id: str
    short_id: str
    plugin_id: str
    state: TaskState
    description: str
    due: Optional[datetime] = None
    hide_until: Optional[datetime] = None
    cancel_after: Optional[datetime] = None
    completed: Optional[datetime] = None
    reviewed: Optional[datetime] = None
    deleted: Optional[datetime] = None
    added: datetime
    effort_impact: EffortImpact
    children: List[str] = Field(default_factory=list)
    parents: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    project: str = ""
    urgency: float = 0.0

    @classmethod
    def from_task(cls, task: Task) -> TaskOut:
        return cls(**task.model_dump(), short_id=task.short_id, state=task.state)


# PUBLIC_INTERFACE
class TaskPage(BaseModel):
    """
    Envelope for paginated task listings.
    """
    items: List[TaskOut] = Field(..., description="Tasks on this page")
    total: int = Field(..., description="Total number of tasks matching the query")
    limit: int = Field(..., description="Page size")
    page: int = Field(..., description="1-based page number")
    has_more: bool = Field(..., description="Whether later pages hold more tasks")


class WeightOut(BaseModel):
    name: str
    coefficient: float
    multiplier: int
    unit: str


# PUBLIC_INTERFACE
class UrgencyOut(BaseModel):
    """Urgency of a task and the rules that produced it."""

    id: str
    urgency: float
    weights: List[WeightOut]


# PUBLIC_INTERFACE
class PluginOut(BaseModel):
    name: str
    description: str
    example_config: str


# PUBLIC_INTERFACE
class ImportResultOut(BaseModel):
    """Outcome of a TaskWarrior import."""

    imported: int = Field(..., description="Items stored, or already present")
    warnings: List[str] = Field(default_factory=list, description="One message per skipped item")


# PUBLIC_INTERFACE
class RecurringIn(BaseModel):
    """A recurring entry given in the request instead of the configured ones."""

    description: str = Field(..., min_length=1)
    frequency: str = Field(..., min_length=1, description="Duration expression, e.g. '1w' or 'daily'")
