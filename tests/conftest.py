from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from furtherance.autosave import Autosave
from furtherance.db import TaskStore

T0 = datetime(2024, 3, 14, 9, 0, 0)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeIdleProbe:
    def __init__(self) -> None:
        self.idle = 0

    def seconds_since_input(self) -> int:
        return self.idle


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def idle_probe() -> FakeIdleProbe:
    return FakeIdleProbe()


@pytest.fixture
def store(tmp_path):
    task_store = TaskStore.open(tmp_path / "furtherance.sqlite3")
    yield task_store
    task_store.close()


@pytest.fixture
def autosave(tmp_path) -> Autosave:
    return Autosave(tmp_path / "autosave.txt")
