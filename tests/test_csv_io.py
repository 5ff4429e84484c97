from datetime import datetime, timedelta

import pytest

from furtherance.csv_io import InvalidCSVError, export_csv, import_csv, read_csv_file, write_csv_file
from furtherance.models import Task

START = datetime(2024, 3, 14, 9, 0, 0)


def test_export_layout():
    task = Task.create(
        "Write, edit", START, START + timedelta(seconds=90), tags="#docs", project="Client", rate=20.0
    )
    lines = export_csv([task]).splitlines()
    assert lines[0] == "Name,Project,Tags,Rate,Start Time,Stop Time,Total Seconds"
    assert lines[1] == '"Write, edit",Client,#docs,20.0,2024-03-14 09:00:00,2024-03-14 09:01:30,90'


def test_import_reads_exported_rows(tmp_path):
    tasks = [
        Task.create("Write", START, START + timedelta(minutes=5), tags="#a #b"),
        Task.create("Read", START, START + timedelta(minutes=1), rate=7.5),
    ]
    path = tmp_path / "export.csv"
    write_csv_file(path, tasks)
    imported = read_csv_file(path)
    assert [(task.name, task.tags, task.rate, task.duration_seconds) for task in imported] == [
        ("Write", "#a #b", 0.0, 300),
        ("Read", "", 7.5, 60),
    ]
    assert imported[0].id != tasks[0].id


def test_import_normalizes_tags():
    text = (
        "Name,Project,Tags,Rate,Start Time,Stop Time,Total Seconds\n"
        "Task,,#CAse #with multiple # #tags,,2024-03-14 09:00:00,2024-03-14 10:00:00,3600\n"
    )
    (task,) = import_csv(text)
    assert task.tags == "#case #with multiple #tags"
    assert task.rate == 0.0


@pytest.mark.parametrize(
    "text",
    [
        "",
        "Name,Tags\nTask,#a\n",
        "Name,Project,Tags,Rate,Start Time,Stop Time,Total Seconds\nTask,,,,2024-03-14 09:00:00\n",
        "Name,Project,Tags,Rate,Start Time,Stop Time,Total Seconds\n"
        "Task,,,,not a date,2024-03-14 10:00:00,0\n",
        "Name,Project,Tags,Rate,Start Time,Stop Time,Total Seconds\n"
        "Task,,,,2024-03-14 10:00:00,2024-03-14 09:00:00,0\n",
    ],
)
def test_invalid_csv_imports_nothing(text):
    with pytest.raises(InvalidCSVError):
        import_csv(text)
