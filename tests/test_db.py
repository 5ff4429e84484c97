from datetime import datetime, timedelta

import pytest

from furtherance.db import PersistenceError, TaskStore
from furtherance.models import SessionSnapshot, Shortcut, Task
from furtherance.timeframes import custom_range

START = datetime(2024, 3, 14, 9, 0, 0, 250000)


def make_task(name, offset_hours, seconds=600, **kwargs):
    start = START + timedelta(hours=offset_hours)
    return Task.create(name, start, start + timedelta(seconds=seconds), **kwargs)


def test_create_and_fetch_round_trips_fields(store):
    task = make_task("Write", 0, tags="#docs", project="Client", rate=12.5)
    store.create(task)
    fetched = store.get(task.id)
    assert fetched == task


def test_query_is_inclusive_and_newest_first(store):
    early = make_task("Early", 0)
    late = make_task("Late", 5)
    outside = make_task("Outside", 48)
    store.create_many([early, late, outside])
    found = store.query(early.start_time, late.start_time)
    assert [task.name for task in found] == ["Late", "Early"]
    assert store.last() == outside


def test_update_and_delete(store):
    task = store.create(make_task("Write", 0))
    store.update(task.with_changes(name="Rewrite"))
    assert store.get(task.id).name == "Rewrite"
    store.delete(task.id)
    assert store.get(task.id) is None
    with pytest.raises(ValueError):
        store.delete(task.id)
    with pytest.raises(ValueError):
        store.update(task)


def test_group_operations(store):
    tasks = [make_task("Write", hour, tags="#a") for hour in range(3)]
    store.create_many(tasks)
    ids = [task.id for task in tasks[:2]]
    assert store.update_many(ids, name="Edit", tags="#b") == 2
    assert {task.name for task in store.all()} == {"Edit", "Write"}
    assert store.update_many(ids) == 0
    assert store.delete_many(ids) == 2
    assert store.delete_all() == 1
    assert store.all() == []


def test_shortcuts_crud(store):
    shortcut = store.create_shortcut(Shortcut(name="Standup", tags="#team"))
    assert store.shortcuts() == [shortcut]
    shortcut.color_hex = "#ff0000"
    store.update_shortcut(shortcut)
    assert store.get_shortcut(shortcut.id).color_hex == "#ff0000"
    store.delete_shortcut(shortcut.id)
    assert store.shortcuts() == []
    with pytest.raises(ValueError):
        store.delete_shortcut(shortcut.id)


def test_session_mirror(store):
    assert store.load_session() is None
    snapshot = SessionSnapshot(
        state="running",
        name_and_tags="Write #docs",
        start_time=START,
        deadline=START + timedelta(minutes=25),
        pomodoro_sessions=2,
    )
    store.save_session(snapshot)
    store.save_session(snapshot)
    assert store.load_session() == snapshot
    store.clear_session()
    assert store.load_session() is None


def test_sqlite_errors_become_persistence_errors(tmp_path):
    store = TaskStore.open(tmp_path / "db.sqlite3")
    task = store.create(make_task("Write", 0))
    with pytest.raises(PersistenceError):
        store.create(task)
    store.close()


def test_query_includes_task_started_in_last_second_of_day(store):
    day = custom_range(START, START)
    start = day.end - timedelta(microseconds=600000)
    store.create(Task.create("Late", start, start + timedelta(minutes=5)))
    assert [task.name for task in store.query(day.start, day.end)] == ["Late"]
