import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from taskpoet.importer import (
    TaskWarriorTask,
    import_taskwarrior,
    load_taskwarrior_export,
    parse_taskwarrior_time,
)
from taskpoet.models import Task
from taskpoet.repositories import TaskRepository

from conftest import NOW, fixed_clock

EXPORT = [
    {
        "id": 1,
        "uuid": "2f1c0c4e-8a7e-4d0e-9d7b-4c4a1a3f0001",
        "description": "water the plants",
        "status": "pending",
        "entry": "20230901T080000Z",
        "modified": "20230902T080000Z",
        "due": "20231010T120000Z",
        "tags": ["home", "garden"],
        "urgency": 4.2,
        "annotations": [{"entry": "20230901T090000Z", "description": "the ferns too"}],
    },
    {
        "id": 0,
        "uuid": "2f1c0c4e-8a7e-4d0e-9d7b-4c4a1a3f0002",
        "description": "renew passport",
        "status": "completed",
        "entry": "20230801T080000Z",
        "end": "20230815T100000Z",
    },
    {
        "id": 0,
        "uuid": "2f1c0c4e-8a7e-4d0e-9d7b-4c4a1a3f0003",
        "description": "weekly review",
        "status": "recurring",
        "recur": "weekly",
        "mask": "--+",
        "entry": "20230801T080000Z",
    },
]


def test_parse_time():
    assert parse_taskwarrior_time("20231010T120000Z") == datetime(2023, 10, 10, 12, tzinfo=timezone.utc)


def test_load_export_ignores_unknown_fields():
    items = load_taskwarrior_export(json.dumps(EXPORT))
    assert len(items) == 3
    assert items[0].due == datetime(2023, 10, 10, 12, tzinfo=timezone.utc)
    assert items[0].annotations[0].description == "the ferns too"
    assert items[2].mask == "--+"


def test_to_task_maps_fields():
    task = load_taskwarrior_export(json.dumps(EXPORT))[0].to_task()
    assert task.id == "2f1c0c4e-8a7e-4d0e-9d7b-4c4a1a3f0001"
    assert task.tags == ["garden", "home"]
    assert task.added == datetime(2023, 9, 1, 8, tzinfo=timezone.utc)
    assert [c.text for c in task.comments] == ["the ferns too"]
    assert task.completed is None


def test_wait_after_due_is_clamped():
    due = datetime(2023, 10, 10, 12, tzinfo=timezone.utc)
    item = TaskWarriorTask(description="x", due=due, wait=due + timedelta(days=1))
    assert item.to_task().hide_until == due - timedelta(minutes=1)


def test_deleted_status():
    end = datetime(2023, 8, 2, tzinfo=timezone.utc)
    task = TaskWarriorTask(uuid="u1", description="x", status="deleted", end=end).to_task()
    assert task.deleted == end
    assert task.state.value == "deleted"


def test_import_into_repository(repo):
    result = import_taskwarrior(repo, load_taskwarrior_export(json.dumps(EXPORT)))
    assert result.imported == 2
    assert len(result.warnings) == 1
    assert "recurrence mask" in result.warnings[0]
    assert [t.description for t in repo.list("/active")] == ["water the plants"]
    assert [t.description for t in repo.list("/completed")] == ["renew passport"]


def test_import_twice_is_harmless(repo):
    items = load_taskwarrior_export(json.dumps(EXPORT))
    import_taskwarrior(repo, items)
    again = import_taskwarrior(repo, items)
    assert again.imported == 2
    assert len(repo.list()) == 2


def test_bad_items_become_warnings(repo):
    items = [TaskWarriorTask(uuid="no-description"), TaskWarriorTask(uuid="ok", description="fine")]
    result = import_taskwarrior(repo, items)
    assert result.imported == 1
    assert "error importing task" in result.warnings[0]


def test_no_default_due_on_import(store):
    r = TaskRepository(store, clock=fixed_clock, default=Task(due=NOW + timedelta(days=1)))
    import_taskwarrior(r, [TaskWarriorTask(uuid="u", description="no due")])
    assert r.get_with_id("u").due is None


@pytest.mark.parametrize("raw", ["not json", "{}"])
def test_load_rejects_bad_input(raw):
    with pytest.raises(ValidationError):
        load_taskwarrior_export(raw)
