from datetime import datetime, timedelta

import pytest

from furtherance.autosave import SEPARATOR, AutosaveError, to_iso8601
from furtherance.parsing import parse_task_input
from furtherance.timer import TimerSession

START = datetime(2024, 3, 14, 9, 0, 0)


def make_session():
    raw = "Write #docs @Client $20"
    return TimerSession.from_input(raw, parse_task_input(raw), START)


def test_write_then_restore(autosave, store):
    autosave.write(make_session(), START + timedelta(minutes=10))
    assert autosave.exists()
    fields = autosave.path.read_text(encoding="utf-8").split(SEPARATOR)
    assert fields[0] == "Write"
    assert fields[3] == "#docs"

    task = autosave.restore(store)
    assert task is not None
    assert task.duration_seconds == 600
    assert task.project == "Client"
    assert task.rate == 20.0
    assert store.get(task.id) == task
    assert not autosave.exists()


def test_reads_four_field_records(autosave):
    autosave.path.write_text(
        SEPARATOR.join(
            ["Read", to_iso8601(START), to_iso8601(START + timedelta(seconds=90)), "#book"]
        ),
        encoding="utf-8",
    )
    task = autosave.read()
    assert task.name == "Read"
    assert task.tags == "#book"
    assert task.project == ""
    assert task.duration_seconds == 90


def test_restore_without_file_returns_none(autosave, store):
    assert autosave.restore(store) is None


def test_malformed_file(autosave):
    autosave.path.write_text("just one field", encoding="utf-8")
    with pytest.raises(AutosaveError):
        autosave.read()


def test_delete_is_idempotent(autosave):
    autosave.delete()
    autosave.write(make_session(), START)
    autosave.delete()
    assert not autosave.exists()
