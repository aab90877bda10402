from datetime import datetime, timedelta, timezone

import pytest

from taskpoet.errors import TaskValidationError
from taskpoet.models import Comment, EffortImpact, Task, TaskState, make_key

from conftest import NOW


def valid_task(**kwargs) -> Task:
    values = {"id": "abc123", "description": "write the report"}
    values.update(kwargs)
    return Task(**values)


class TestCheck:
    def test_valid_task_passes(self):
        valid_task(due=NOW, hide_until=NOW - timedelta(days=1), parents=["p1"], children=["c1"]).check()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"description": ""},
            {"id": "has/slash"},
            {"due": NOW, "hide_until": NOW + timedelta(seconds=1)},
            {"parents": ["abc123"]},
            {"children": ["abc123"]},
            {"parents": ["p1", "p1"]},
        ],
        ids=["empty-description", "slash-in-id", "hidden-past-due", "self-parent", "self-child", "dup-parents"],
    )
    def test_invalid_task_fails(self, overrides):
        with pytest.raises(TaskValidationError):
            valid_task(**overrides).check()

    def test_hide_until_equal_to_due_is_fine(self):
        valid_task(due=NOW, hide_until=NOW).check()


class TestState:
    def test_active_by_default(self):
        t = valid_task()
        assert t.state is TaskState.ACTIVE
        assert t.key_path() == "/active/builtin/abc123"

    def test_completed(self):
        t = valid_task(completed=NOW)
        assert t.state is TaskState.COMPLETED
        assert t.key_path() == "/completed/builtin/abc123"

    def test_deleted_wins_over_completed(self):
        t = valid_task(completed=NOW, deleted=NOW)
        assert t.state is TaskState.DELETED
        assert t.key_path() == "/deleted/builtin/abc123"

    def test_plugin_id_in_key(self):
        assert valid_task(plugin_id="jira").key_path() == "/active/jira/abc123"

    def test_empty_plugin_id_means_builtin(self):
        assert valid_task(plugin_id="").plugin_id == "builtin"

    def test_parse_state(self):
        assert TaskState.parse("active") is TaskState.ACTIVE
        assert TaskState.parse("/completed") is TaskState.COMPLETED
        with pytest.raises(TaskValidationError):
            TaskState.parse("archived")

    def test_make_key(self):
        assert make_key(TaskState.DELETED, "", "x") == "/deleted/builtin/x"


class TestFields:
    def test_tags_sorted_and_unique(self):
        assert valid_task(tags=["work", "home", "work"]).tags == ["home", "work"]

    def test_naive_datetimes_become_aware(self):
        t = valid_task(due=datetime(2030, 1, 1, 12, 0))
        assert t.due.tzinfo is not None

    def test_short_id(self):
        assert valid_task(id="abcdefgh").short_id == "abcde"
        assert valid_task(id="ab").short_id == "ab"

    def test_effort_impact_labels(self):
        assert EffortImpact(1).label == "Low Effort, High Impact"
        assert EffortImpact.AVOID.label == "High Effort, Low Impact"
        assert EffortImpact.UNSET.emoji

    def test_add_comment(self):
        t = valid_task()
        t.add_comment("first note")
        assert [c.text for c in t.comments] == ["first note"]

    def test_empty_comment_rejected(self):
        with pytest.raises(TaskValidationError):
            Comment.new("")

    def test_description_details(self):
        t = valid_task(comments=[Comment(added=datetime(2023, 1, 2, tzinfo=timezone.utc), text="note")])
        assert t.description_details() == "write the report\n 2023-01-02 - note"


class TestSerialization:
    def test_round_trip(self):
        t = valid_task(
            plugin_id="example",
            due=NOW,
            hide_until=NOW - timedelta(hours=1),
            effort_impact=EffortImpact.MEDIUM,
            tags=["b", "a"],
            parents=["p"],
            comments=[Comment(added=NOW, text="hi")],
            urgency=3.5,
        )
        assert Task.from_json(t.to_json()) == t

    def test_unset_timestamps_omitted(self):
        assert "completed" not in valid_task().to_json()
