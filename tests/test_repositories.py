from datetime import timedelta

import pytest

from taskpoet.errors import (
    AlreadyExistsError,
    AmbiguousError,
    InvalidExpressionError,
    NotFoundError,
    TaskValidationError,
)
from taskpoet.models import EffortImpact, Task, TaskState
from taskpoet.recurring import RecurringTask
from taskpoet.repositories import (
    ListQuery,
    SortBy,
    TaskRepository,
    apply_filters,
    build_repository,
    filter_hidden,
    filter_regex,
    sort_tasks,
)
from taskpoet.settings import Settings
from taskpoet.store import MemoryKVStore
from taskpoet.synonyms import Calendar

from conftest import NOW, fixed_clock


class TestAdd:
    def test_assigns_id_and_plugin(self, repo):
        t = repo.add(Task(description="pay rent"))
        assert len(t.id) == 36
        assert t.plugin_id == "builtin"
        got = repo.get_with_id(t.id, t.plugin_id, t.state.value)
        assert got == t

    def test_keeps_given_id(self, repo):
        t = repo.add(Task(id="given", description="x"))
        assert repo.get_with_exact_path("/active/builtin/given") == t

    def test_does_not_touch_caller_object(self, repo):
        original = Task(description="x")
        repo.add(original)
        assert original.id == ""

    def test_pay_rent_due_end_of_month(self, repo):
        due = Calendar(NOW).synonym("eom")
        repo.add(Task(description="pay rent", due=due))
        active = repo.list("/active")
        assert len(active) == 1
        assert active[0].description == "pay rent"
        assert active[0].due == due
        assert (due.day, due.hour, due.minute, due.second, due.microsecond) == (31, 23, 59, 59, 999999)

    def test_duplicate_in_same_state(self, repo):
        repo.add(Task(id="dup", description="x"))
        with pytest.raises(AlreadyExistsError):
            repo.add(Task(id="dup", description="y"))

    def test_duplicate_across_states(self, repo):
        t = repo.add(Task(id="dup", description="x"))
        repo.complete(t)
        with pytest.raises(AlreadyExistsError):
            repo.add(Task(id="dup", description="again"))

    def test_same_id_other_plugin_is_fine(self, repo):
        repo.add(Task(id="same", description="x"))
        repo.add(Task(id="same", plugin_id="jira", description="x"))
        assert len(repo.list("/active")) == 2

    def test_invalid_task_is_not_stored(self, repo):
        with pytest.raises(TaskValidationError):
            repo.add(Task(id="bad/id", description="x"))
        assert repo.list() == []

    def test_urgency_is_computed(self, repo):
        t = repo.add(Task(description="x", tags=["next"], added=NOW))
        assert t.urgency == 15.0

    def test_default_due_template(self, store):
        due = NOW + timedelta(days=7)
        r = TaskRepository(store, clock=fixed_clock, default=Task(due=due))
        assert r.add(Task(description="x")).due == due
        explicit = NOW + timedelta(days=1)
        assert r.add(Task(description="y", due=explicit)).due == explicit
        assert r.add(Task(description="z"), defaults=Task()).due is None

    def test_log_adds_completed(self, repo):
        t = repo.log(Task(description="already done"))
        assert t.completed == NOW
        assert repo.get_with_id(t.id, state="completed") == t
        assert repo.list("/active") == []


class TestAddSet:
    def test_same_description_twice(self, repo):
        a, b = repo.add_set([Task(description="same"), Task(description="same")])
        assert a.id != b.id
        assert len(repo.list("/active")) == 2

    def test_stops_at_first_failure_keeping_earlier(self, repo):
        tasks = [Task(id="one", description="first"), Task(id="two"), Task(id="three", description="third")]
        with pytest.raises(TaskValidationError):
            repo.add_set(tasks)
        assert [t.id for t in repo.list()] == ["one"]


class TestEdit:
    def test_sparse_merge_keeps_stored_values(self, repo):
        due = NOW + timedelta(days=3)
        t = repo.add(Task(description="original", due=due, effort_impact=EffortImpact.HIGH))
        edited = repo.edit(Task(id=t.id, tags=["work"]))
        assert edited.description == "original"
        assert edited.due == due
        assert edited.effort_impact is EffortImpact.HIGH
        assert edited.added == t.added
        assert edited.tags == ["work"]
        assert repo.get_with_id(t.id) == edited

    def test_changes_provided_fields(self, repo):
        t = repo.add(Task(description="original"))
        later = NOW + timedelta(days=5)
        edited = repo.edit(t.model_copy(update={"description": "renamed", "due": later}))
        assert (edited.description, edited.due) == ("renamed", later)

    def test_missing_task(self, repo):
        with pytest.raises(NotFoundError):
            repo.edit(Task(id="ghost", description="x"))

    def test_completed_cannot_change(self, repo):
        done = repo.complete(repo.add(Task(description="x")))
        with pytest.raises(TaskValidationError):
            repo.edit(done.model_copy(update={"completed": done.completed + timedelta(hours=1)}))

    def test_invariants_checked_after_merge(self, repo):
        t = repo.add(Task(description="x", due=NOW))
        with pytest.raises(TaskValidationError):
            repo.edit(Task(id=t.id, hide_until=NOW + timedelta(days=1)))

    def test_edit_set_leaves_siblings_alone(self, repo):
        due = NOW + timedelta(days=2)
        a, b = repo.add_set([Task(description="same", due=due), Task(description="same", due=due)])
        repo.edit_set([Task(id=a.id, description="changed")])
        stored_a = repo.get_with_id(a.id)
        stored_b = repo.get_with_id(b.id)
        assert stored_a.description == "changed"
        assert (stored_a.added, stored_a.due) == (a.added, due)
        assert stored_b == b

    def test_edit_set_is_all_or_nothing(self, repo):
        a = repo.add(Task(description="a"))
        with pytest.raises(NotFoundError):
            repo.edit_set([Task(id=a.id, description="changed"), Task(id="ghost", description="x")])
        assert repo.get_with_id(a.id).description == "a"

    def test_add_or_edit_set(self, repo):
        existing = repo.add(Task(id="e1", description="old"))
        result = repo.add_or_edit_set([Task(id="e1", description="new"), Task(id="n1", description="fresh")])
        assert sorted(t.id for t in result) == ["e1", "n1"]
        assert repo.get_with_id("e1").description == "new"
        assert repo.get_with_id("e1").added == existing.added
        assert repo.get_with_id("n1").description == "fresh"

    def test_add_comment(self, repo):
        t = repo.add(Task(description="x"))
        commented = repo.add_comment(t, "remember the milk")
        assert [c.text for c in repo.get_with_id(t.id).comments] == ["remember the milk"]
        assert commented.comments[0].text == "remember the milk"


class TestHierarchy:
    def test_add_parent_links_both_sides(self, repo):
        child = repo.add(Task(description="child"))
        parent = repo.add(Task(description="parent"))
        repo.add_parent(child, parent)
        assert child.parents == [parent.id]
        assert parent.children == [child.id]
        assert repo.get_with_id(child.id).parents == [parent.id]
        assert repo.get_with_id(parent.id).children == [child.id]

    def test_repeating_add_parent_fails(self, repo):
        child = repo.add(Task(description="child"))
        parent = repo.add(Task(description="parent"))
        repo.add_parent(child, parent)
        with pytest.raises(TaskValidationError):
            repo.add_parent(child, parent)
        assert repo.get_with_id(child.id).parents == [parent.id]
        assert repo.get_with_id(parent.id).children == [child.id]

    def test_add_child(self, repo):
        parent = repo.add(Task(description="parent"))
        child = repo.add(Task(description="child"))
        repo.add_child(parent, child)
        assert repo.get_with_id(parent.id).children == [child.id]
        assert repo.get_with_id(child.id).parents == [parent.id]


class TestTransitions:
    def test_complete_moves_key(self, repo):
        t = repo.add(Task(id="t1", description="x"))
        done = repo.complete(t)
        assert done.completed == NOW
        assert done.state is TaskState.COMPLETED
        assert repo.get_ids_by_prefix("/active") == []
        assert repo.get_ids_by_prefix("/completed") == ["/completed/builtin/t1"]

    def test_only_active_can_complete(self, repo):
        done = repo.complete(repo.add(Task(description="x")))
        with pytest.raises(TaskValidationError):
            repo.complete(done)

    def test_complete_unknown(self, repo):
        with pytest.raises(NotFoundError):
            repo.complete(Task(id="ghost", description="x"))

    def test_delete_active_and_completed(self, repo):
        a = repo.add(Task(id="a", description="x"))
        c = repo.complete(repo.add(Task(id="c", description="y")))
        repo.delete(a)
        repo.delete(c)
        assert repo.get_ids_by_prefix("/deleted") == ["/deleted/builtin/a", "/deleted/builtin/c"]
        assert repo.get_ids_by_prefix("/active") == []
        assert repo.get_ids_by_prefix("/completed") == []

    def test_delete_twice(self, repo):
        gone = repo.delete(repo.add(Task(description="x")))
        assert gone.deleted == NOW
        with pytest.raises(TaskValidationError):
            repo.delete(gone)

    def test_purge(self, repo):
        t = repo.add(Task(description="x"))
        repo.purge(t)
        assert repo.list() == []
        with pytest.raises(NotFoundError):
            repo.purge(t)


class TestLookup:
    @pytest.fixture
    def seeded(self, repo):
        repo.add(Task(id="abc123", description="first"))
        repo.add(Task(id="abd456", description="second"))
        repo.complete(repo.add(Task(id="xyz789", description="third thing")))
        return repo

    def test_get_with_id_searches_all_states(self, seeded):
        assert seeded.get_with_id("xyz789").description == "third thing"
        with pytest.raises(NotFoundError):
            seeded.get_with_id("xyz789", state="active")

    def test_partial_unique(self, seeded):
        assert seeded.get_with_partial_id("abc").id == "abc123"
        assert seeded.get_with_partial_id("xy").id == "xyz789"

    def test_partial_ambiguous(self, seeded):
        with pytest.raises(AmbiguousError) as exc:
            seeded.get_with_partial_id("ab")
        assert exc.value.candidates == ["/active/builtin/abc123", "/active/builtin/abd456"]

    def test_partial_none(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.get_with_partial_id("zzz")

    def test_partial_respects_state(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.get_with_partial_id("xy", state="active")

    def test_exact_path_missing(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.get_with_exact_path("/active/builtin/nope")

    def test_complete_ids_with_prefix(self, seeded):
        assert seeded.complete_ids_with_prefix("/active", "abc") == ["abc12\tfirst"]
        assert seeded.complete_ids_with_prefix("/active", "sec") == ["abd45\tsecond"]
        assert seeded.complete_ids_with_prefix("/completed", "thing") == ["xyz78\tthird thing"]

    def test_states(self, repo):
        assert repo.states() == ["active", "completed", "deleted"]
        assert repo.state_paths() == ["/active", "/completed", "/deleted"]


class TestQuery:
    @pytest.fixture
    def seeded(self, repo):
        repo.add(Task(id="a", description="water plants", added=NOW - timedelta(days=3), due=NOW + timedelta(days=9)))
        repo.add(Task(id="b", description="file taxes", added=NOW - timedelta(days=2), tags=["next"]))
        repo.add(Task(id="c", description="buy plants", added=NOW - timedelta(days=1), due=NOW + timedelta(days=1)))
        repo.add(
            Task(
                id="h",
                description="hidden for now",
                added=NOW - timedelta(days=4),
                hide_until=NOW + timedelta(days=1),
            )
        )
        repo.complete(repo.add(Task(id="d", description="done", added=NOW - timedelta(days=5))))
        return repo

    def test_default_lists_visible_active_by_added(self, seeded):
        items, total = seeded.query()
        assert [t.id for t in items] == ["a", "b", "c"]
        assert total == 3

    def test_include_hidden(self, seeded):
        items, _ = seeded.query(ListQuery(include_hidden=True))
        assert [t.id for t in items] == ["h", "a", "b", "c"]

    def test_multiple_prefixes(self, seeded):
        items, total = seeded.query(ListQuery(prefixes=("/active", "/completed")))
        assert total == 4
        assert items[0].id == "d"

    def test_sort_by_due(self, seeded):
        items, _ = seeded.query(ListQuery(sort=SortBy.DUE))
        assert [t.id for t in items] == ["c", "a", "b"]

    def test_sort_by_urgency(self, seeded):
        items, _ = seeded.query(ListQuery(sort=SortBy.URGENCY))
        assert items[0].id == "b"

    def test_search(self, seeded):
        items, total = seeded.query(ListQuery(search="plants$"))
        assert sorted(t.id for t in items) == ["a", "c"]
        assert total == 2

    def test_bad_search(self, seeded):
        with pytest.raises(InvalidExpressionError):
            seeded.query(ListQuery(search="(unclosed"))

    def test_pagination(self, seeded):
        items, total = seeded.query(ListQuery(limit=2, offset=1))
        assert [t.id for t in items] == ["b", "c"]
        assert total == 3


class TestSortAndFilters:
    def test_sort_due_puts_missing_last(self):
        tasks = [
            Task(id="none", description="x"),
            Task(id="late", description="x", due=NOW + timedelta(days=2)),
            Task(id="soon", description="x", due=NOW),
        ]
        assert [t.id for t in sort_tasks(tasks, SortBy.DUE)] == ["soon", "late", "none"]

    def test_sort_completed_most_recent_first(self):
        tasks = [
            Task(id="open", description="x"),
            Task(id="old", description="x", completed=NOW - timedelta(days=3)),
            Task(id="new", description="x", completed=NOW),
        ]
        assert [t.id for t in sort_tasks(tasks, SortBy.COMPLETED)] == ["new", "old", "open"]

    def test_apply_filters(self):
        tasks = [
            Task(id="1", description="call mom"),
            Task(id="2", description="call bank", hide_until=NOW + timedelta(hours=1)),
            Task(id="3", description="email boss"),
        ]
        kept = apply_filters(tasks, filter_hidden(NOW), filter_regex("^call"))
        assert [t.id for t in kept] == ["1"]
        assert apply_filters(tasks) == tasks


class TestRepositorySetup:
    def test_namespace_required(self):
        with pytest.raises(TaskValidationError):
            TaskRepository(MemoryKVStore(), namespace="")

    def test_namespaces_are_isolated(self):
        store = MemoryKVStore()
        work = TaskRepository(store, namespace="work")
        home = TaskRepository(store, namespace="home")
        work.add(Task(description="ship it"))
        assert home.list() == []
        assert work.bucket == "/work/tasks"

    def test_build_repository_from_settings(self):
        r = build_repository(_settings(namespace="poems", default_due="eom"), clock=fixed_clock)
        assert r.bucket == "/poems/tasks"
        assert r.default_template().due == Calendar(NOW).synonym("eom")
        assert r.add(Task(description="x")).due == Calendar(NOW).synonym("eom")
        assert "example" in r.plugins

    def test_default_due_follows_the_clock(self):
        present = [NOW]
        r = build_repository(_settings(default_due="eow"), clock=lambda: present[0])
        present[0] = NOW + timedelta(days=10)
        t = r.add(Task(description="x"))
        assert t.due > present[0]
        assert t.due == Calendar(present[0]).synonym("eow")

    def test_bad_default_due_fails_at_build(self):
        with pytest.raises(InvalidExpressionError):
            build_repository(_settings(default_due="whenever"), clock=fixed_clock)

    def test_recurring_from_settings(self):
        r = build_repository(_settings(recurring=(("stretch", "daily"),)), clock=fixed_clock)
        assert r.recurring == [RecurringTask("stretch", timedelta(days=1))]
        assert [t.description for t in r.top_up_recurring()] == ["stretch"]
        assert r.top_up_recurring() == []

    def test_bad_recurring_frequency_fails_at_build(self):
        with pytest.raises(InvalidExpressionError):
            build_repository(_settings(recurring=(("stretch", "sometimes"),)), clock=fixed_clock)


class TestPlugins:
    def test_sync_by_name_is_repeatable(self, repo):
        first = repo.sync_plugin("example")
        assert sorted(t.id for t in first) == ["EXAMPLE-1", "EXAMPLE-2"]
        repo.sync_plugin("example")
        assert len(repo.list("/active/example")) == 2

    def test_sync_skips_tasks_settled_locally(self, repo):
        repo.sync_plugin("example")
        repo.complete(repo.get_with_id("EXAMPLE-1", "example"))
        again = repo.sync_plugin("example")
        assert [t.id for t in again] == ["EXAMPLE-2"]
        assert repo.get_with_id("EXAMPLE-1", "example").state is TaskState.COMPLETED
        assert [t.id for t in repo.list("/active/example")] == ["EXAMPLE-2"]

    def test_unknown_plugin(self, repo):
        with pytest.raises(NotFoundError):
            repo.sync_plugin("nope")


def _settings(**kwargs) -> Settings:
    values = dict(
        store_backend="memory",
        db_path="",
        namespace="default",
        default_due="",
        log_level="INFO",
        cors_allow_origins=["*"],
    )
    values.update(kwargs)
    return Settings(**values)
