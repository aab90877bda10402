import os
from datetime import datetime, timezone

import pytest

# Never touch ~/.taskpoet.db from the test suite
os.environ.setdefault("TASKPOET_STORE_BACKEND", "memory")
os.environ.setdefault("TASKPOET_LOG_LEVEL", "DEBUG")

from taskpoet.plugins import default_registry  # noqa: E402
from taskpoet.repositories import TaskRepository  # noqa: E402
from taskpoet.store import MemoryKVStore, SQLiteKVStore  # noqa: E402

# A Tuesday
NOW = datetime(2023, 10, 3, 10, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        s = MemoryKVStore()
    else:
        s = SQLiteKVStore(str(tmp_path / "taskpoet.db"))
    yield s
    s.close()


@pytest.fixture
def repo(store):
    return TaskRepository(store, clock=fixed_clock, plugins=default_registry())
