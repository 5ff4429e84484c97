from datetime import datetime, timezone

import pytest
from typer.testing import CliRunner

from furtherance import cli
from furtherance.db import TaskStore

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "get_settings_path", lambda: tmp_path / "settings.json")
    monkeypatch.setattr(cli, "get_autosave_path", lambda: tmp_path / "autosave.txt")
    return tmp_path / "furtherance.sqlite3"


def test_add_report_and_export(db_path, tmp_path):
    result = runner.invoke(
        cli.app,
        [
            "add",
            "Write report #docs @Client $40",
            "--start",
            "2024-03-14 09:00",
            "--stop",
            "2024-03-14 10:30",
            "--db",
            str(db_path),
        ],
    )
    assert result.exit_code == 0, result.output
    assert "5400 seconds" in result.output

    result = runner.invoke(
        cli.app,
        ["report", "--start", "2024-03-14", "--end", "2024-03-14", "--db", str(db_path)],
    )
    assert result.exit_code == 0, result.output
    assert "Total time: 01:30:00" in result.output
    assert "Earnings:   $60.00" in result.output
    assert "Write report" in result.output

    csv_path = tmp_path / "out.csv"
    result = runner.invoke(cli.app, ["export", str(csv_path), "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    result = runner.invoke(cli.app, ["import", str(csv_path), "--db", str(db_path)])
    assert "Imported 1 tasks" in result.output

    store = TaskStore.open(db_path)
    assert len(store.all()) == 2
    store.close()


def test_add_rejects_bad_input(db_path):
    result = runner.invoke(
        cli.app,
        ["add", "#oops", "--start", "2024-03-14 09:00", "--stop", "2024-03-14 10:00", "--db", str(db_path)],
    )
    assert result.exit_code == 1

    result = runner.invoke(
        cli.app,
        ["add", "Task", "--start", "2024-03-14 10:00", "--stop", "2024-03-14 09:00", "--db", str(db_path)],
    )
    assert result.exit_code == 1


def test_import_invalid_csv_fails(db_path, tmp_path):
    bad = tmp_path / "bad.csv"
    bad.write_text("not,a,furtherance,file\n", encoding="utf-8")
    result = runner.invoke(cli.app, ["import", str(bad), "--db", str(db_path)])
    assert result.exit_code == 1


def test_delete_all_and_restore_autosave(db_path):
    result = runner.invoke(cli.app, ["restore-autosave", "--db", str(db_path)])
    assert "No autosave found." in result.output

    runner.invoke(
        cli.app,
        ["add", "Task", "--start", "2024-03-14 09:00", "--stop", "2024-03-14 10:00", "--db", str(db_path)],
    )
    result = runner.invoke(cli.app, ["delete-all", "--db", str(db_path)], input="n\n")
    assert result.exit_code != 0
    result = runner.invoke(cli.app, ["delete-all", "--yes", "--db", str(db_path)])
    assert "Deleted 1 tasks." in result.output


def test_web_does_not_open_browser_by_default(db_path, monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "run_dashboard", lambda **kwargs: calls.append(kwargs))
    result = runner.invoke(cli.app, ["web", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    assert calls[0]["open_browser"] is False


def test_add_converts_offset_times_to_local(db_path):
    result = runner.invoke(
        cli.app,
        [
            "add",
            "Call",
            "--start",
            "2024-03-14T09:00:00+00:00",
            "--stop",
            "2024-03-14T10:00:00+00:00",
            "--db",
            str(db_path),
        ],
    )
    assert result.exit_code == 0, result.output
    store = TaskStore.open(db_path)
    task = store.all()[0]
    store.close()
    expected = datetime(2024, 3, 14, 9, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert task.start_time == expected
    assert task.start_time.tzinfo is None
