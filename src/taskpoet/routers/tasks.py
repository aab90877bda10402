from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status

from ..errors import NotFoundError
from ..importer import TaskWarriorTask, import_taskwarrior
from ..models import Task, TaskState
from ..recurring import check_recurring, parse_recurring
from ..repositories import ListQuery, SortBy, TaskRepository, get_repository
from ..schemas import (
    CommentCreate,
    DateInput,
    ImportResultOut,
    PluginOut,
    RecurringIn,
    TaskCreate,
    TaskOut,
    TaskPage,
    TaskUpdate,
    UrgencyOut,
    WeightOut,
)
from ..synonyms import Calendar
from ..utils import page_offset, pagination_envelope

router = APIRouter(
    prefix="/v1",
    tags=["tasks"],
)

_DATE_FIELDS = ("due", "hide_until", "cancel_after")


def _get_repo(repo: TaskRepository = Depends(get_repository)) -> TaskRepository:
    """
    Dependency wrapper for repository to keep signatures clean.
    """
    return repo


def _resolve_dates(repo: TaskRepository, values: Dict[str, Any]) -> Dict[str, Any]:
    """Turn calendar expressions in the date fields into datetimes."""
    calendar = Calendar(repo.now())
    out = dict(values)
    for name in _DATE_FIELDS:
        value: Optional[DateInput] = out.get(name)
        if isinstance(value, str):
            out[name] = calendar.date(value)
    return out


def _find(repo: TaskRepository, task_id: str, plugin_id: str = "") -> Task:
    """Exact ID first (any state), then a unique ID prefix."""
    try:
        return repo.get_with_id(task_id, plugin_id)
    except NotFoundError:
        return repo.get_with_partial_id(task_id, plugin_id)


def _new_task(repo: TaskRepository, payload: TaskCreate) -> Task:
    values = _resolve_dates(repo, payload.model_dump(exclude_none=True))
    return Task(**values)


# PUBLIC_INTERFACE
@router.get(
    "/tasks",
    response_model=TaskPage,
    summary="List Tasks",
    description=(
        "List tasks with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- include_active / include_completed: states to list (at least one)\n"
        "- limit: page size (1..1000)\n"
        "- page: 1-based page number\n"
        "- sort: one of added, due, completed, urgency\n"
        "- q: regular expression matched against the description\n\n"
        "Returns a pagination envelope with items and total count."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
    },
)
def list_tasks(
    include_active: bool = Query(True, description="Include active tasks"),
    include_completed: bool = Query(False, description="Include completed tasks"),
    limit: int = Query(10, ge=1, le=1000, description="Page size"),
    page: int = Query(1, ge=1, description="1-based page number"),
    sort: SortBy = Query(SortBy.ADDED, description="Sort policy"),
    q: Optional[str] = Query(None, description="Regular expression for the description"),
    include_hidden: bool = Query(False, description="Include tasks whose hide_until is in the future"),
    repo: TaskRepository = Depends(_get_repo),
) -> TaskPage:
    """
    List tasks with pagination and filters.
    """
    prefixes = []
    if include_active:
        prefixes.append(TaskState.ACTIVE.path)
    if include_completed:
        prefixes.append(TaskState.COMPLETED.path)
    if not prefixes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Must set either include_completed or include_active to true",
        )

    query = ListQuery(
        prefixes=tuple(prefixes),
        limit=limit,
        offset=page_offset(limit, page),
        sort=sort,
        search=q.strip() if q and q.strip() else None,
        include_hidden=include_hidden,
    )
    items, total = repo.query(query)
    envelope = pagination_envelope(
        items=[TaskOut.from_task(t) for t in items],
        total=total,
        limit=limit,
        page=page,
    )
    return TaskPage(**envelope)


# PUBLIC_INTERFACE
@router.post(
    "/tasks",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new task and return the stored resource.",
    responses={
        201: {"description": "Task created successfully"},
        409: {"description": "A task with this ID already exists"},
        422: {"description": "Validation error"},
    },
)
def create_task(payload: TaskCreate, repo: TaskRepository = Depends(_get_repo)) -> TaskOut:
    """
    Create a new task.
    """
    return TaskOut.from_task(repo.add(_new_task(repo, payload)))


# PUBLIC_INTERFACE
@router.post(
    "/tasks/batch",
    response_model=List[TaskOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create Tasks",
    description=(
        "Create several tasks in order. Processing stops at the first failure; "
        "tasks created before it are kept."
    ),
)
def create_tasks(payload: List[TaskCreate], repo: TaskRepository = Depends(_get_repo)) -> List[TaskOut]:
    tasks = [_new_task(repo, p) for p in payload]
    return [TaskOut.from_task(t) for t in repo.add_set(tasks)]


# PUBLIC_INTERFACE
@router.get(
    "/tasks/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    description="Get a single task by its full ID or a unique prefix of it.",
    responses={
        200: {"description": "Task found"},
        404: {"description": "Task not found"},
        409: {"description": "ID prefix matches more than one task"},
    },
)
def get_task(
    task_id: str,
    plugin_id: str = Query("", description="Plugin namespace; 'builtin' when empty"),
    repo: TaskRepository = Depends(_get_repo),
) -> TaskOut:
    """
    Retrieve a single task.
    """
    return TaskOut.from_task(_find(repo, task_id, plugin_id))


# PUBLIC_INTERFACE
@router.put(
    "/tasks/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description="Edit a task. Only provided fields change; completion goes through the complete endpoint.",
    responses={
        200: {"description": "Task updated"},
        404: {"description": "Task not found"},
    },
)
def update_task(
    task_id: str,
    payload: TaskUpdate,
    plugin_id: str = Query("", description="Plugin namespace; 'builtin' when empty"),
    repo: TaskRepository = Depends(_get_repo),
) -> TaskOut:
    """
    Sparse update of a task.
    """
    current = _find(repo, task_id, plugin_id)
    changes = _resolve_dates(repo, payload.model_dump(exclude_none=True))
    edited = Task.model_validate({**current.model_dump(), **changes})
    return TaskOut.from_task(repo.edit(edited))


# PUBLIC_INTERFACE
@router.post(
    "/tasks/{task_id}/complete",
    response_model=TaskOut,
    summary="Complete Task",
    description="Mark an active task as completed.",
)
def complete_task(
    task_id: str,
    plugin_id: str = Query("", description="Plugin namespace; 'builtin' when empty"),
    repo: TaskRepository = Depends(_get_repo),
) -> TaskOut:
    return TaskOut.from_task(repo.complete(_find(repo, task_id, plugin_id)))


# PUBLIC_INTERFACE
@router.post(
    "/tasks/{task_id}/comments",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on Task",
)
def comment_task(
    task_id: str,
    payload: CommentCreate,
    plugin_id: str = Query("", description="Plugin namespace; 'builtin' when empty"),
    repo: TaskRepository = Depends(_get_repo),
) -> TaskOut:
    return TaskOut.from_task(repo.add_comment(_find(repo, task_id, plugin_id), payload.text))


# PUBLIC_INTERFACE
@router.delete(
    "/tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Soft delete a task, or remove it entirely with purge=true.",
    responses={
        204: {"description": "Task deleted"},
        404: {"description": "Task not found"},
    },
)
def delete_task(
    task_id: str,
    purge: bool = Query(False, description="Remove the task instead of marking it deleted"),
    plugin_id: str = Query("", description="Plugin namespace; 'builtin' when empty"),
    repo: TaskRepository = Depends(_get_repo),
) -> Response:
    """
    Delete a task. Returns 204 on success, 404 if not found.
    """
    task = _find(repo, task_id, plugin_id)
    if purge:
        repo.purge(task)
    else:
        repo.delete(task)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.get(
    "/tasks/{task_id}/urgency",
    response_model=UrgencyOut,
    summary="Explain Urgency",
    description="Current urgency of a task with the contribution of each rule.",
)
def task_urgency(
    task_id: str,
    plugin_id: str = Query("", description="Plugin namespace; 'builtin' when empty"),
    repo: TaskRepository = Depends(_get_repo),
) -> UrgencyOut:
    task = _find(repo, task_id, plugin_id)
    weight, described = repo.curator.weigh_and_describe(task)
    return UrgencyOut(
        id=task.id,
        urgency=weight,
        weights=[
            WeightOut(name=d.name, coefficient=d.coefficient, multiplier=d.multiplier, unit=d.unit)
            for d in described
        ],
    )


# PUBLIC_INTERFACE
@router.get(
    "/plugins",
    response_model=List[PluginOut],
    summary="List Plugins",
    tags=["plugins"],
)
def list_plugins(repo: TaskRepository = Depends(_get_repo)) -> List[PluginOut]:
    out = []
    for name in repo.plugins.names():
        plugin = repo.plugins.create(name)
        out.append(PluginOut(name=name, description=plugin.description(), example_config=plugin.example_config()))
    return out


# PUBLIC_INTERFACE
@router.post(
    "/plugins/{name}/sync",
    response_model=List[TaskOut],
    summary="Sync Plugin",
    description="Pull tasks from a plugin and add or update them.",
    tags=["plugins"],
    responses={404: {"description": "Unknown plugin"}},
)
def sync_plugin(name: str, repo: TaskRepository = Depends(_get_repo)) -> List[TaskOut]:
    return [TaskOut.from_task(t) for t in repo.sync_plugin(name)]


# PUBLIC_INTERFACE
@router.post(
    "/tasks/import",
    response_model=ImportResultOut,
    summary="Import TaskWarrior Export",
    description=(
        "Add the items of a `task export` JSON array. Items already present count as "
        "imported; recurring templates and invalid items are skipped with a warning."
    ),
    tags=["import"],
)
def import_tasks(payload: List[TaskWarriorTask], repo: TaskRepository = Depends(_get_repo)) -> ImportResultOut:
    result = import_taskwarrior(repo, payload)
    return ImportResultOut(imported=result.imported, warnings=result.warnings)


# PUBLIC_INTERFACE
@router.post(
    "/recurring/check",
    response_model=List[TaskOut],
    summary="Top Up Recurring Tasks",
    description=(
        "Add an active task for every recurring entry that is neither pending nor "
        "completed within its frequency. Uses the configured entries unless a list "
        "is given in the body."
    ),
    tags=["recurring"],
    responses={422: {"description": "A frequency does not parse"}},
)
def top_up_recurring(
    payload: Optional[List[RecurringIn]] = Body(default=None),
    repo: TaskRepository = Depends(_get_repo),
) -> List[TaskOut]:
    if payload is None:
        added = repo.top_up_recurring()
    else:
        added = check_recurring(repo, parse_recurring([(r.description, r.frequency) for r in payload]))
    return [TaskOut.from_task(t) for t in added]
