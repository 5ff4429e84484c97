"""CSV export and import of completed tasks."""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

from .models import Task
from .parsing import parse_rate, separate_tags

logger = logging.getLogger(__name__)

HEADER = ["Name", "Project", "Tags", "Rate", "Start Time", "Stop Time", "Total Seconds"]
TIME_FMT = "%Y-%m-%d %H:%M:%S"


class InvalidCSVError(ValueError):
    """Raised when a file is not a valid Furtherance CSV; nothing is imported."""


def export_csv(tasks: Iterable[Task]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(HEADER)
    for task in tasks:
        writer.writerow(
            [
                task.name,
                task.project,
                task.tags,
                task.rate,
                task.start_time.strftime(TIME_FMT),
                task.stop_time.strftime(TIME_FMT),
                task.duration_seconds,
            ]
        )
    return buffer.getvalue()


def import_csv(text: str) -> list[Task]:
    """Parse an exported CSV; any malformed row rejects the whole file."""
    rows = [row for row in csv.reader(io.StringIO(text)) if row]
    if not rows or rows[0] != HEADER:
        raise InvalidCSVError("The CSV you chose is not a valid Furtherance CSV.")

    tasks: list[Task] = []
    for line_number, row in enumerate(rows[1:], start=2):
        if len(row) != len(HEADER):
            raise InvalidCSVError(
                f"Row {line_number} has {len(row)} columns, expected {len(HEADER)}."
            )
        name, project, tags, rate, start, stop, _total = row
        try:
            tasks.append(
                Task.create(
                    name,
                    datetime.strptime(start, TIME_FMT),
                    datetime.strptime(stop, TIME_FMT),
                    tags=separate_tags(tags),
                    project=project,
                    rate=parse_rate(rate) if rate.strip() else 0.0,
                )
            )
        except ValueError as exc:
            raise InvalidCSVError(f"Row {line_number} is invalid: {exc}") from exc
    logger.debug("Parsed %d tasks from CSV.", len(tasks))
    return tasks


def write_csv_file(path: Path, tasks: Iterable[Task]) -> None:
    Path(path).write_text(export_csv(tasks), encoding="utf-8")


def read_csv_file(path: Path) -> list[Task]:
    return import_csv(Path(path).read_text(encoding="utf-8"))
