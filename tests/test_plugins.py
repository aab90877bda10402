from typing import List

import pytest

from taskpoet.errors import NotFoundError, TaskValidationError
from taskpoet.models import Task
from taskpoet.plugins import ExamplePlugin, PluginRegistry, TaskPlugin, default_registry


class StaticPlugin(TaskPlugin):
    def __init__(self, tasks: List[Task]):
        self.tasks = tasks

    def sync(self) -> List[Task]:
        return [t.model_copy() for t in self.tasks]

    def description(self) -> str:
        return "returns a fixed list"

    def example_config(self) -> str:
        return ""


class TestRegistry:
    def test_default_registry_has_example(self):
        registry = default_registry()
        assert registry.names() == ["example"]
        assert "example" in registry
        assert len(registry) == 1
        assert isinstance(registry.create("example"), ExamplePlugin)

    def test_registries_are_independent(self):
        a = default_registry()
        a.register("other", lambda: StaticPlugin([]))
        assert "other" not in default_registry()

    def test_unknown_name(self):
        with pytest.raises(NotFoundError):
            PluginRegistry().create("missing")

    def test_empty_name(self):
        with pytest.raises(TaskValidationError):
            PluginRegistry().register("", ExamplePlugin)

    def test_iteration_is_sorted(self):
        registry = PluginRegistry()
        registry.register("zeta", ExamplePlugin)
        registry.register("alpha", ExamplePlugin)
        assert list(registry) == ["alpha", "zeta"]
        assert [name for name, _ in registry.items()] == ["alpha", "zeta"]


def test_example_plugin_tasks():
    plugin = ExamplePlugin()
    tasks = plugin.sync()
    assert [t.description for t in tasks] == ["First Synced Task", "Second Synced Task"]
    assert all(t.plugin_id == "example" for t in tasks)
    assert plugin.description()
    assert plugin.example_config().startswith("#")


def test_sync_instance_updates_existing(repo):
    plugin = StaticPlugin([Task(id="T-1", plugin_id="static", description="first title")])
    repo.sync_plugin(plugin)
    plugin.tasks = [Task(id="T-1", plugin_id="static", description="new title")]
    repo.sync_plugin(plugin)
    stored = repo.list("/active/static")
    assert [t.description for t in stored] == ["new title"]
