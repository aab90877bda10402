"""
Task plugins pull tasks from somewhere else (an issue tracker, a calendar,
...) so the repository can add or update them.

Plugins are registered on an explicit PluginRegistry that is handed to the
repository; nothing is registered at import time.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterator, List, Tuple

from .errors import NotFoundError, TaskValidationError
from .models import Task

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class TaskPlugin(ABC):
    """Contract every task plugin implements."""

    @abstractmethod
    def sync(self) -> List[Task]:
        """Fetch the plugin's current tasks. Each should carry the plugin's plugin_id."""

    @abstractmethod
    def description(self) -> str:
        """Human readable summary of what the plugin does."""

    @abstractmethod
    def example_config(self) -> str:
        """Example configuration snippet for the plugin."""


PluginFactory = Callable[[], TaskPlugin]


# PUBLIC_INTERFACE
class PluginRegistry:
    """Name to factory mapping for task plugins."""

    def __init__(self) -> None:
        self._factories: Dict[str, PluginFactory] = {}

    def register(self, name: str, factory: PluginFactory) -> None:
        """Register (or replace) the factory for `name`."""
        if not name:
            raise TaskValidationError("plugin name must not be empty")
        self._factories[name] = factory
        logger.debug("registered plugin %s", name)

    def create(self, name: str) -> TaskPlugin:
        """
        Instantiate the plugin registered under `name`.

        Raises:
            NotFoundError: if no plugin has that name.
        """
        try:
            factory = self._factories[name]
        except KeyError:
            raise NotFoundError(f"unknown plugin: {name}") from None
        return factory()

    def names(self) -> List[str]:
        return sorted(self._factories)

    def items(self) -> List[Tuple[str, PluginFactory]]:
        return sorted(self._factories.items())

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._factories)


# PUBLIC_INTERFACE
class ExamplePlugin(TaskPlugin):
    """A small reference plugin to copy when writing your own."""

    plugin_id = "example"

    def sync(self) -> List[Task]:
        tasks = [
            Task(id="EXAMPLE-1", plugin_id=self.plugin_id, description="First Synced Task"),
            Task(id="EXAMPLE-2", plugin_id=self.plugin_id, description="Second Synced Task"),
        ]
        logger.info("example plugin returned %d tasks", len(tasks))
        return tasks

    def description(self) -> str:
        return "This is meant to be a little structure to help you create your own Task Plugin"

    def example_config(self) -> str:
        return "# No configuration yet"


# PUBLIC_INTERFACE
def default_registry() -> PluginRegistry:
    """Return a new registry holding the bundled plugins."""
    registry = PluginRegistry()
    registry.register("example", ExamplePlugin)
    return registry
