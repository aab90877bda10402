from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from .curator import Curator
from .errors import (
    AlreadyExistsError,
    AmbiguousError,
    InvalidExpressionError,
    NotFoundError,
    TaskValidationError,
)
from .models import DEFAULT_PLUGIN_ID, EffortImpact, Task, TaskState, local_now, make_key
from .plugins import PluginRegistry, TaskPlugin, default_registry
from .recurring import RecurringTask, check_recurring, parse_recurring
from .settings import Settings, get_settings
from .store import KVStore, Transaction, open_store
from .synonyms import Calendar

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Filter = Callable[[Task], bool]


# PUBLIC_INTERFACE
class SortBy(str, Enum):
    """Presentation orderings for task listings."""

    ADDED = "added"
    DUE = "due"
    COMPLETED = "completed"
    URGENCY = "urgency"


# PUBLIC_INTERFACE
def sort_tasks(tasks: Iterable[Task], sort_by: SortBy = SortBy.ADDED) -> List[Task]:
    """
    Return tasks ordered by the given policy.

    - added: oldest first
    - due: earliest due first, tasks without due last
    - completed: most recently completed first, uncompleted last
    - urgency: most urgent first
    """
    items = list(tasks)
    if sort_by is SortBy.DUE:
        return sorted(items, key=lambda t: (t.due is None, t.due))
    if sort_by is SortBy.COMPLETED:
        return sorted(items, key=lambda t: (t.completed is not None, t.completed), reverse=True)
    if sort_by is SortBy.URGENCY:
        return sorted(items, key=lambda t: t.urgency, reverse=True)
    return sorted(items, key=lambda t: t.added)


# PUBLIC_INTERFACE
def filter_hidden(now: Optional[datetime] = None) -> Filter:
    """Build a filter dropping tasks whose hide_until is still in the future."""
    moment = now or local_now()

    def keep(task: Task) -> bool:
        return task.hide_until is None or task.hide_until <= moment

    return keep


# PUBLIC_INTERFACE
def filter_regex(pattern: str) -> Filter:
    """
    Build a filter keeping tasks whose description matches `pattern`.

    Raises:
        InvalidExpressionError: if the pattern does not compile.
    """
    try:
        rx = re.compile(pattern)
    except re.error as e:
        raise InvalidExpressionError(f"invalid regular expression {pattern!r}: {e}") from e

    def keep(task: Task) -> bool:
        return rx.search(task.description) is not None

    return keep


# PUBLIC_INTERFACE
def apply_filters(tasks: Iterable[Task], *filters: Filter) -> List[Task]:
    """Keep tasks passing every filter, in order. No filters keeps everything."""
    return [t for t in tasks if all(f(t) for f in filters)]


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing tasks.
    """
    prefixes: Tuple[str, ...] = (TaskState.ACTIVE.path,)
    limit: Optional[int] = None  # None means unbounded
    offset: int = 0
    sort: SortBy = SortBy.ADDED
    search: Optional[str] = None  # regex on the description
    include_hidden: bool = False


# PUBLIC_INTERFACE
class TaskRepository:
    """
    Task storage and lifecycle over an ordered key-value store.

    Every task lives in the bucket '/<namespace>/tasks' under the key
    '/<state>/<plugin_id>/<id>' with its JSON as the value, so listing a state
    (or a plugin within a state) is a prefix scan.

    Args:
        store: storage engine.
        namespace: bucket namespace, must not be empty.
        curator: urgency scorer; defaults to the stock rules on the same clock.
        plugins: plugin registry used by sync_plugin.
        default: template whose `due` is applied to new tasks lacking one.
        default_due: calendar expression for the due of new tasks lacking one,
            resolved against the clock on every add. Used when the template
            carries no due.
        clock: callable returning the present moment.
        recurring: entries topped up by top_up_recurring.
    """

    def __init__(
        self,
        store: KVStore,
        namespace: str = "default",
        curator: Optional[Curator] = None,
        plugins: Optional[PluginRegistry] = None,
        default: Optional[Task] = None,
        clock: Optional[Clock] = None,
        default_due: str = "",
        recurring: Optional[Sequence[RecurringTask]] = None,
    ) -> None:
        if not namespace:
            raise TaskValidationError("namespace must not be empty")
        self.store = store
        self.namespace = namespace
        self.bucket = f"/{namespace}/tasks"
        self._clock: Clock = clock or local_now
        self.curator = curator or Curator(clock=self._clock)
        self.plugins = plugins if plugins is not None else PluginRegistry()
        self.default = default or Task()
        self.default_due = default_due
        self.recurring: List[RecurringTask] = list(recurring or [])
        self.store.ensure_bucket(self.bucket)

    def now(self) -> datetime:
        return self._clock()

    # PUBLIC_INTERFACE
    def default_template(self) -> Task:
        """The template applied by add() when no defaults are passed, resolved for now."""
        if self.default.due is None and self.default_due:
            return self.default.model_copy(update={"due": Calendar(self.now()).date(self.default_due)})
        return self.default

    # --- reads ---------------------------------------------------------------

    @staticmethod
    def _load(tx: Transaction, key: str) -> Optional[Task]:
        raw = tx.get(key)
        return None if raw is None else Task.from_json(raw)

    # PUBLIC_INTERFACE
    def states(self) -> List[str]:
        return [s.value for s in TaskState]

    # PUBLIC_INTERFACE
    def state_paths(self) -> List[str]:
        return [s.path for s in TaskState]

    # PUBLIC_INTERFACE
    def list(self, prefix: str = "") -> List[Task]:
        """Return every task whose key starts with prefix, e.g. '/active'."""
        with self.store.view(self.bucket) as tx:
            return [Task.from_json(v) for _, v in tx.scan(prefix)]

    # PUBLIC_INTERFACE
    def query(self, query: Optional[ListQuery] = None) -> Tuple[List[Task], int]:
        """
        Return a page of tasks and the total count matching the query.

        Urgency is recomputed for every listed task. Hidden tasks are dropped
        unless include_hidden is set; search is a regex on the description.
        """
        q = query or ListQuery()
        tasks: List[Task] = []
        for prefix in q.prefixes:
            tasks.extend(self.list(prefix))
        for t in tasks:
            t.urgency = self.curator.weigh(t)

        filters: List[Filter] = []
        if not q.include_hidden:
            filters.append(filter_hidden(self.now()))
        if q.search:
            filters.append(filter_regex(q.search))

        items = sort_tasks(apply_filters(tasks, *filters), q.sort)
        total = len(items)

        start = max(q.offset, 0)
        if q.limit is None:
            return items[start:], total
        return items[start:start + max(q.limit, 0)], total

    # PUBLIC_INTERFACE
    def get_with_exact_path(self, path: str) -> Task:
        """
        Raises:
            NotFoundError: if nothing is stored at path.
        """
        with self.store.view(self.bucket) as tx:
            task = self._load(tx, path)
        if task is None:
            raise NotFoundError(f"could not find task: {path}")
        return task

    # PUBLIC_INTERFACE
    def get_with_id(self, task_id: str, plugin_id: str = "", state: str = "") -> Task:
        """
        Look a task up by its full ID. With no state, active, completed and
        deleted are tried in that order.
        """
        states = [TaskState.parse(state)] if state else list(TaskState)
        keys = [make_key(s, plugin_id or DEFAULT_PLUGIN_ID, task_id) for s in states]
        with self.store.view(self.bucket) as tx:
            for key in keys:
                task = self._load(tx, key)
                if task is not None:
                    return task
        raise NotFoundError(f"could not find that task at any of {keys}")

    # PUBLIC_INTERFACE
    def get_with_partial_id(self, partial_id: str, plugin_id: str = "", state: str = "") -> Task:
        """
        Look a task up by a prefix of its ID.

        Raises:
            NotFoundError: if no task matches.
            AmbiguousError: if more than one task matches; candidates holds their keys.
        """
        states = [TaskState.parse(state)] if state else list(TaskState)
        prefixes = [make_key(s, plugin_id or DEFAULT_PLUGIN_ID, partial_id) for s in states]
        matches: List[str] = []
        for prefix in prefixes:
            matches.extend(self.get_ids_by_prefix(prefix))
        if not matches:
            raise NotFoundError(f"no matches for {partial_id} found in {prefixes}")
        if len(matches) > 1:
            raise AmbiguousError(partial_id, matches)
        return self.get_with_exact_path(matches[0])

    # PUBLIC_INTERFACE
    def get_ids_by_prefix(self, prefix: str) -> List[str]:
        """Return the raw keys starting with prefix."""
        with self.store.view(self.bucket) as tx:
            return tx.keys(prefix)

    # PUBLIC_INTERFACE
    def complete_ids_with_prefix(self, prefix: str, to_complete: str) -> List[str]:
        """
        Shell completion candidates under prefix, as '<short id>\\t<description>',
        for tasks whose ID starts with, or whose description contains, to_complete.
        """
        out: List[str] = []
        with self.store.view(self.bucket) as tx:
            for key, raw in tx.scan(prefix):
                task_id = key.rsplit("/", 1)[-1]
                task = Task.from_json(raw)
                if task_id.startswith(to_complete) or to_complete in task.description:
                    out.append(f"{task_id[:5]}\t{task.description}")
        return out

    # --- writes --------------------------------------------------------------

    # PUBLIC_INTERFACE
    def add(self, task: Task, defaults: Optional[Task] = None) -> Task:
        """
        Store a new task.

        Args:
            task: the task to add. An empty ID gets a fresh uuid4.
            defaults: template providing `due` when the task has none;
                the repository's own template is used when omitted.

        Returns:
            The stored task, with ID and urgency filled in.

        Raises:
            TaskValidationError: if the task breaks an invariant.
            AlreadyExistsError: if (plugin_id, id) is used in any state.
        """
        t = task.model_copy(deep=True)
        if not t.id:
            t.id = str(uuid.uuid4())
        template = defaults if defaults is not None else self.default_template()
        if t.due is None and template.due is not None:
            t.due = template.due
        t.urgency = self.curator.weigh(t)
        t.check()

        with self.store.update(self.bucket) as tx:
            for state in TaskState:
                key = make_key(state, t.plugin_id, t.id)
                if tx.get(key) is not None:
                    raise AlreadyExistsError(key)
            tx.put(t.key_path(), t.to_json())
        logger.debug("added task %s", t.key_path())
        return t

    # PUBLIC_INTERFACE
    def add_set(self, tasks: Sequence[Task], defaults: Optional[Task] = None) -> List[Task]:
        """
        Add tasks one by one. The first failure stops processing; tasks added
        before it stay stored, so retrying the whole set is safe.
        """
        return [self.add(t, defaults) for t in tasks]

    # PUBLIC_INTERFACE
    def log(self, task: Task, defaults: Optional[Task] = None) -> Task:
        """Add a task that is already done; completed defaults to now."""
        t = task.model_copy(deep=True)
        if t.completed is None:
            t.completed = self.now()
        return self.add(t, defaults)

    def _merge(self, tx: Transaction, task: Task) -> Task:
        original = self._load(tx, task.key_path())
        if original is None:
            raise NotFoundError(f"cannot edit a task that did not previously exist: {task.id}")
        if task.completed is not None and task.completed != original.completed:
            raise TaskValidationError("editing the completed field is not supported, complete the task instead")

        updates = {"added": original.added}
        if not task.description:
            updates["description"] = original.description
        for name in ("due", "completed", "hide_until"):
            if getattr(task, name) is None:
                updates[name] = getattr(original, name)
        if task.effort_impact == EffortImpact.UNSET:
            updates["effort_impact"] = original.effort_impact

        merged = task.model_copy(update=updates, deep=True)
        merged.urgency = self.curator.weigh(merged)
        merged.check()
        return merged

    # PUBLIC_INTERFACE
    def edit(self, task: Task) -> Task:
        """
        Sparse update of an existing task.

        Empty description, unset due/completed/hide_until and unset
        effort_impact keep their stored values; `added` never changes.

        Raises:
            NotFoundError: if the task is not stored at its current key.
            TaskValidationError: if completed is changed or an invariant breaks.
        """
        with self.store.update(self.bucket) as tx:
            merged = self._merge(tx, task)
            tx.put(merged.key_path(), merged.to_json())
        logger.debug("edited task %s", merged.key_path())
        return merged

    # PUBLIC_INTERFACE
    def edit_set(self, tasks: Sequence[Task]) -> List[Task]:
        """Edit several tasks in one transaction; any failure leaves all of them untouched."""
        merged: List[Task] = []
        with self.store.update(self.bucket) as tx:
            for task in tasks:
                m = self._merge(tx, task)
                tx.put(m.key_path(), m.to_json())
                merged.append(m)
        logger.debug("edited %d tasks", len(merged))
        return merged

    # PUBLIC_INTERFACE
    def add_or_edit_set(self, tasks: Sequence[Task]) -> List[Task]:
        """Add the tasks not stored yet at their key and edit the others."""
        with self.store.view(self.bucket) as tx:
            existing = {t.key_path() for t in tasks if tx.get(t.key_path()) is not None}
        to_add = [t for t in tasks if t.key_path() not in existing]
        to_edit = [t for t in tasks if t.key_path() in existing]
        return self.add_set(to_add) + self.edit_set(to_edit)

    # PUBLIC_INTERFACE
    def add_parent(self, child: Task, parent: Task) -> None:
        """
        Link child and parent on both sides and store both.

        On success the passed objects carry the new references. Linking the
        same pair twice fails on the duplicate parent.
        """
        c = child.model_copy(deep=True)
        p = parent.model_copy(deep=True)
        c.parents = [*c.parents, parent.id]
        p.children = [*p.children, child.id]
        self.edit_set([c, p])
        child.parents = c.parents
        parent.children = p.children

    # PUBLIC_INTERFACE
    def add_child(self, parent: Task, child: Task) -> None:
        """Same as add_parent, from the parent's side."""
        self.add_parent(child, parent)

    def _move(self, old_key: str, task: Task) -> None:
        with self.store.update(self.bucket) as tx:
            if tx.get(old_key) is None:
                raise NotFoundError(f"could not find task: {old_key}")
            tx.put(task.key_path(), task.to_json())
            tx.delete(old_key)
        logger.debug("moved task %s -> %s", old_key, task.key_path())

    # PUBLIC_INTERFACE
    def complete(self, task: Task) -> Task:
        """
        Mark an active task completed, moving it to the completed state.

        Raises:
            TaskValidationError: if the task is not active.
            NotFoundError: if the task is not stored.
        """
        if task.state is not TaskState.ACTIVE:
            raise TaskValidationError(f"only active tasks can be completed, this one is {task.state.value}")
        done = task.model_copy(deep=True)
        done.completed = self.now()
        self._move(task.key_path(), done)
        return done

    # PUBLIC_INTERFACE
    def delete(self, task: Task) -> Task:
        """
        Soft delete: stamp `deleted` and move the task to the deleted state.

        Raises:
            TaskValidationError: if the task is already deleted.
            NotFoundError: if the task is not stored.
        """
        if task.state is TaskState.DELETED:
            raise TaskValidationError("task is already deleted")
        gone = task.model_copy(deep=True)
        gone.deleted = self.now()
        self._move(task.key_path(), gone)
        return gone

    # PUBLIC_INTERFACE
    def purge(self, task: Task) -> None:
        """Hard delete the key at the task's current path."""
        key = task.key_path()
        with self.store.update(self.bucket) as tx:
            if not tx.delete(key):
                raise NotFoundError(f"cannot purge a task that does not exist: {key}")
        logger.debug("purged task %s", key)

    # PUBLIC_INTERFACE
    def add_comment(self, task: Task, text: str) -> Task:
        """Append a comment and store the task."""
        t = task.model_copy(deep=True)
        t.add_comment(text)
        return self.edit(t)

    # --- plugins -------------------------------------------------------------

    # PUBLIC_INTERFACE
    def sync_plugin(self, plugin: Union[TaskPlugin, str]) -> List[Task]:
        """
        Pull tasks from a plugin (instance or registered name) and add or
        update them.

        A synced task already stored in another state, e.g. completed
        locally, is skipped with a warning rather than failing the sync.
        """
        if isinstance(plugin, str):
            plugin = self.plugins.create(plugin)
        tasks: List[Task] = []
        with self.store.view(self.bucket) as tx:
            for t in plugin.sync():
                moved = [
                    key
                    for key in (make_key(s, t.plugin_id, t.id) for s in TaskState)
                    if key != t.key_path() and tx.get(key) is not None
                ]
                if t.id and moved:
                    logger.warning("skipping synced task %s, already stored at %s", t.key_path(), moved[0])
                    continue
                tasks.append(t)
        stored = self.add_or_edit_set(tasks)
        logger.info("synced %d tasks from %s", len(stored), type(plugin).__name__)
        return stored

    # PUBLIC_INTERFACE
    def top_up_recurring(self) -> List[Task]:
        """Top up the configured recurring entries; returns the tasks added."""
        return check_recurring(self, self.recurring)


# PUBLIC_INTERFACE
def build_repository(settings: Settings, clock: Optional[Clock] = None) -> TaskRepository:
    """
    Build a repository from settings.
    - store engine from store_backend / db_path
    - default due expression from default_due, resolved on every add
    - recurring entries from recurring
    - the bundled plugins

    Raises:
        InvalidExpressionError: if default_due or a recurring frequency does
            not parse, so a bad configuration fails at startup.
    """
    if settings.default_due:
        present = clock() if clock is not None else None
        Calendar(present).date(settings.default_due)
    return TaskRepository(
        open_store(settings),
        namespace=settings.namespace,
        plugins=default_registry(),
        clock=clock,
        default_due=settings.default_due,
        recurring=parse_recurring(settings.recurring),
    )


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> TaskRepository:
    """Process-wide repository configured from the environment."""
    return build_repository(get_settings())
