"""Crash-recovery snapshot of the running timer."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .models import Task
from .timeframes import as_local

if TYPE_CHECKING:
    from .db import TaskStore
    from .timer import TimerSession

logger = logging.getLogger(__name__)

SEPARATOR = "$FUR$"


def to_iso8601(value: datetime) -> str:
    """Local time with milliseconds and UTC offset."""
    return value.astimezone().isoformat(timespec="milliseconds")


def from_iso8601(value: str) -> datetime:
    return as_local(datetime.fromisoformat(value.strip()))


class AutosaveError(ValueError):
    """Raised when an autosave file exists but cannot be understood."""


class Autosave:
    """Reads and writes ``name$FUR$start$FUR$stop$FUR$tags[$FUR$project$FUR$rate]``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def write(self, session: "TimerSession", now: datetime) -> None:
        text = SEPARATOR.join(
            [
                session.name,
                to_iso8601(session.start_time),
                to_iso8601(now),
                session.tags,
                session.project or "",
                f"{session.rate or 0.0}",
            ]
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(text, encoding="utf-8")
        except OSError:
            logger.exception("Error writing autosave to %s", self.path)
            return
        logger.debug("Autosaved running timer to %s", self.path)

    def read(self) -> Task:
        """Turn the saved snapshot into a completed task (start..last write)."""
        text = self.path.read_text(encoding="utf-8")
        fields = text.split(SEPARATOR)
        if len(fields) not in (4, 6):
            raise AutosaveError(f"Unexpected autosave format in {self.path}")
        try:
            start = from_iso8601(fields[1])
            stop = from_iso8601(fields[2])
            rate = float(fields[5]) if len(fields) == 6 else 0.0
        except ValueError as exc:
            raise AutosaveError(f"Unreadable autosave in {self.path}") from exc
        return Task.create(
            fields[0],
            start,
            max(start, stop),
            tags=fields[3],
            project=fields[4] if len(fields) == 6 else None,
            rate=rate,
        )

    def restore(self, store: "TaskStore") -> Optional[Task]:
        """Save the snapshot as a task, then remove the file."""
        if not self.exists():
            return None
        task = self.read()
        store.create(task)
        self.delete()
        logger.info("Restored autosaved task %s (%s)", task.id, task.name)
        return task

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Error deleting autosave %s", self.path)
