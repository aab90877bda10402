"""
taskpoet: task tracking over an embedded key-value store.

The FastAPI app lives in taskpoet.main (uvicorn taskpoet.main:app); importing
this package does not build it.
"""
from .curator import Curator
from .errors import (
    AlreadyExistsError,
    AmbiguousError,
    InvalidExpressionError,
    NotFoundError,
    TaskPoetError,
    TaskValidationError,
)
from .importer import ImportResult, import_taskwarrior, load_taskwarrior_export
from .models import Comment, EffortImpact, Task, TaskState
from .recurring import RecurringTask, check_recurring
from .repositories import ListQuery, SortBy, TaskRepository
from .store import MemoryKVStore, SQLiteKVStore
from .synonyms import Calendar

__version__ = "0.1.0"

__all__ = [
    "AlreadyExistsError",
    "AmbiguousError",
    "Calendar",
    "Comment",
    "Curator",
    "EffortImpact",
    "ImportResult",
    "InvalidExpressionError",
    "ListQuery",
    "MemoryKVStore",
    "NotFoundError",
    "RecurringTask",
    "SQLiteKVStore",
    "SortBy",
    "Task",
    "TaskPoetError",
    "TaskRepository",
    "TaskState",
    "TaskValidationError",
    "check_recurring",
    "import_taskwarrior",
    "load_taskwarrior_export",
]
