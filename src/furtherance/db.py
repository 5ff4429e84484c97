"""SQLite database layer for tasks, shortcuts and the running-timer mirror."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, TypeVar

from .models import SessionSnapshot, Shortcut, Task

logger = logging.getLogger(__name__)

DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"

_UNSET = object()

T = TypeVar("T")


class PersistenceError(RuntimeError):
    """Raised when the task store cannot complete an operation."""


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            tags TEXT NOT NULL DEFAULT '',
            project TEXT NOT NULL DEFAULT '',
            rate REAL NOT NULL DEFAULT 0,
            start_time TEXT NOT NULL,
            stop_time TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_tasks_start_time
            ON tasks(start_time);

        CREATE TABLE IF NOT EXISTS shortcuts (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            tags TEXT NOT NULL DEFAULT '',
            project TEXT NOT NULL DEFAULT '',
            rate REAL NOT NULL DEFAULT 0,
            color_hex TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS timer_session (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            state TEXT NOT NULL,
            name_and_tags TEXT NOT NULL,
            start_time TEXT NOT NULL,
            deadline TEXT,
            pomodoro_sessions INTEGER NOT NULL DEFAULT 0,
            long_break INTEGER NOT NULL DEFAULT 0
        );
        """
    )


def _format_dt(value: datetime) -> str:
    return value.strftime(DATETIME_FMT)


def _parse_dt(value: str) -> datetime:
    return datetime.strptime(value, DATETIME_FMT)


def row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        name=row["name"],
        tags=row["tags"],
        project=row["project"],
        rate=row["rate"],
        start_time=_parse_dt(row["start_time"]),
        stop_time=_parse_dt(row["stop_time"]),
    )


def _task_params(task: Task) -> tuple[Any, ...]:
    return (
        task.id,
        task.name,
        task.tags,
        task.project,
        task.rate,
        _format_dt(task.start_time),
        _format_dt(task.stop_time),
    )


def insert_task(conn: sqlite3.Connection, task: Task) -> None:
    insert_tasks(conn, [task])


def insert_tasks(conn: sqlite3.Connection, tasks: Iterable[Task]) -> None:
    conn.executemany(
        """
        INSERT INTO tasks (id, name, tags, project, rate, start_time, stop_time)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [_task_params(task) for task in tasks],
    )


def update_task(conn: sqlite3.Connection, task: Task) -> None:
    """Overwrite the stored fields of ``task``."""
    cur = conn.execute(
        """
        UPDATE tasks
        SET name = ?, tags = ?, project = ?, rate = ?, start_time = ?, stop_time = ?
        WHERE id = ?
        """,
        _task_params(task)[1:] + (task.id,),
    )
    if cur.rowcount == 0:
        raise ValueError(f"No task found for id={task.id}")


def update_tasks(
    conn: sqlite3.Connection,
    task_ids: Iterable[str],
    *,
    name: object = _UNSET,
    tags: object = _UNSET,
    project: object = _UNSET,
    rate: object = _UNSET,
) -> int:
    """Apply the same field changes to many tasks; return rows changed."""
    fields: list[str] = []
    params: list[object] = []
    for column, value in (
        ("name", name),
        ("tags", tags),
        ("project", project),
        ("rate", rate),
    ):
        if value is not _UNSET:
            fields.append(f"{column} = ?")
            params.append(value)

    ids = list(task_ids)
    if not fields or not ids:
        return 0

    placeholders = ", ".join("?" for _ in ids)
    cur = conn.execute(
        f"UPDATE tasks SET {', '.join(fields)} WHERE id IN ({placeholders})",
        params + ids,
    )
    return cur.rowcount


def delete_task(conn: sqlite3.Connection, task_id: str) -> None:
    cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
    if cur.rowcount == 0:
        raise ValueError(f"No task found for id={task_id}")


def delete_tasks(conn: sqlite3.Connection, task_ids: Iterable[str]) -> int:
    ids = list(task_ids)
    if not ids:
        return 0
    placeholders = ", ".join("?" for _ in ids)
    cur = conn.execute(f"DELETE FROM tasks WHERE id IN ({placeholders})", ids)
    return cur.rowcount


def delete_all_tasks(conn: sqlite3.Connection) -> int:
    return conn.execute("DELETE FROM tasks").rowcount


def fetch_task(conn: sqlite3.Connection, task_id: str) -> Optional[Task]:
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    return row_to_task(row) if row else None


def fetch_tasks_between(
    conn: sqlite3.Connection, start: datetime, end: datetime
) -> list[Task]:
    """Tasks whose start time lies in ``[start, end]``, newest first."""
    rows = conn.execute(
        """
        SELECT * FROM tasks
        WHERE start_time >= ? AND start_time <= ?
        ORDER BY start_time DESC;
        """,
        (_format_dt(start), _format_dt(end)),
    )
    return [row_to_task(row) for row in rows]


def fetch_all_tasks(conn: sqlite3.Connection) -> list[Task]:
    rows = conn.execute("SELECT * FROM tasks ORDER BY start_time DESC;")
    return [row_to_task(row) for row in rows]


def fetch_last_task(conn: sqlite3.Connection) -> Optional[Task]:
    row = conn.execute(
        "SELECT * FROM tasks ORDER BY start_time DESC LIMIT 1;"
    ).fetchone()
    return row_to_task(row) if row else None


def row_to_shortcut(row: sqlite3.Row) -> Shortcut:
    return Shortcut(
        id=row["id"],
        name=row["name"],
        tags=row["tags"],
        project=row["project"],
        rate=row["rate"],
        color_hex=row["color_hex"],
    )


def insert_shortcut(conn: sqlite3.Connection, shortcut: Shortcut) -> None:
    conn.execute(
        """
        INSERT INTO shortcuts (id, name, tags, project, rate, color_hex)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            shortcut.id,
            shortcut.name,
            shortcut.tags,
            shortcut.project,
            shortcut.rate,
            shortcut.color_hex,
        ),
    )


def update_shortcut(conn: sqlite3.Connection, shortcut: Shortcut) -> None:
    cur = conn.execute(
        """
        UPDATE shortcuts
        SET name = ?, tags = ?, project = ?, rate = ?, color_hex = ?
        WHERE id = ?
        """,
        (
            shortcut.name,
            shortcut.tags,
            shortcut.project,
            shortcut.rate,
            shortcut.color_hex,
            shortcut.id,
        ),
    )
    if cur.rowcount == 0:
        raise ValueError(f"No shortcut found for id={shortcut.id}")


def delete_shortcut(conn: sqlite3.Connection, shortcut_id: str) -> None:
    cur = conn.execute("DELETE FROM shortcuts WHERE id = ?", (shortcut_id,))
    if cur.rowcount == 0:
        raise ValueError(f"No shortcut found for id={shortcut_id}")


def fetch_shortcuts(conn: sqlite3.Connection) -> list[Shortcut]:
    rows = conn.execute("SELECT * FROM shortcuts ORDER BY name COLLATE NOCASE;")
    return [row_to_shortcut(row) for row in rows]


def fetch_shortcut(conn: sqlite3.Connection, shortcut_id: str) -> Optional[Shortcut]:
    row = conn.execute(
        "SELECT * FROM shortcuts WHERE id = ?", (shortcut_id,)
    ).fetchone()
    return row_to_shortcut(row) if row else None


def save_session(conn: sqlite3.Connection, snapshot: SessionSnapshot) -> None:
    conn.execute(
        """
        INSERT OR REPLACE INTO timer_session (
            id, state, name_and_tags, start_time, deadline, pomodoro_sessions, long_break
        ) VALUES (1, ?, ?, ?, ?, ?, ?)
        """,
        (
            snapshot.state,
            snapshot.name_and_tags,
            _format_dt(snapshot.start_time),
            _format_dt(snapshot.deadline) if snapshot.deadline else None,
            snapshot.pomodoro_sessions,
            1 if snapshot.long_break else 0,
        ),
    )


def load_session(conn: sqlite3.Connection) -> Optional[SessionSnapshot]:
    row = conn.execute("SELECT * FROM timer_session WHERE id = 1").fetchone()
    if row is None:
        return None
    return SessionSnapshot(
        state=row["state"],
        name_and_tags=row["name_and_tags"],
        start_time=_parse_dt(row["start_time"]),
        deadline=_parse_dt(row["deadline"]) if row["deadline"] else None,
        pomodoro_sessions=row["pomodoro_sessions"],
        long_break=bool(row["long_break"]),
    )


def clear_session(conn: sqlite3.Connection) -> None:
    conn.execute("DELETE FROM timer_session")


class TaskStore:
    """Task persistence facade used by the timer engine and the web app.

    Every ``sqlite3.Error`` is logged and re-raised as ``PersistenceError`` so
    callers can leave their in-memory state untouched and report the failure.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @classmethod
    def open(cls, path: Path, *, check_same_thread: bool = True) -> "TaskStore":
        return cls(open_database(Path(path), check_same_thread=check_same_thread))

    def close(self) -> None:
        self.conn.close()

    def _run(self, action: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return func(self.conn, *args, **kwargs)
        except sqlite3.Error as exc:
            logger.exception("Failed to %s.", action)
            raise PersistenceError(f"Failed to {action}: {exc}") from exc

    def create(self, task: Task) -> Task:
        self._run("save task", insert_task, task)
        logger.debug("Saved task %s (%s)", task.id, task.name)
        return task

    def create_many(self, tasks: Iterable[Task]) -> int:
        tasks = list(tasks)
        self._run("import tasks", insert_tasks, tasks)
        return len(tasks)

    def update(self, task: Task) -> Task:
        self._run("update task", update_task, task)
        return task

    def update_many(self, task_ids: Iterable[str], **changes: object) -> int:
        return self._run("update tasks", update_tasks, task_ids, **changes)

    def delete(self, task_id: str) -> None:
        self._run("delete task", delete_task, task_id)

    def delete_many(self, task_ids: Iterable[str]) -> int:
        return self._run("delete tasks", delete_tasks, task_ids)

    def delete_all(self) -> int:
        deleted = self._run("delete all tasks", delete_all_tasks)
        logger.info("Deleted all %d tasks.", deleted)
        return deleted

    def get(self, task_id: str) -> Optional[Task]:
        return self._run("fetch task", fetch_task, task_id)

    def query(self, start: datetime, end: datetime) -> list[Task]:
        return self._run("fetch tasks", fetch_tasks_between, start, end)

    def all(self) -> list[Task]:
        return self._run("fetch tasks", fetch_all_tasks)

    def last(self) -> Optional[Task]:
        return self._run("fetch last task", fetch_last_task)

    def shortcuts(self) -> list[Shortcut]:
        return self._run("fetch shortcuts", fetch_shortcuts)

    def get_shortcut(self, shortcut_id: str) -> Optional[Shortcut]:
        return self._run("fetch shortcut", fetch_shortcut, shortcut_id)

    def create_shortcut(self, shortcut: Shortcut) -> Shortcut:
        self._run("save shortcut", insert_shortcut, shortcut)
        return shortcut

    def update_shortcut(self, shortcut: Shortcut) -> Shortcut:
        self._run("update shortcut", update_shortcut, shortcut)
        return shortcut

    def delete_shortcut(self, shortcut_id: str) -> None:
        self._run("delete shortcut", delete_shortcut, shortcut_id)

    def save_session(self, snapshot: SessionSnapshot) -> None:
        self._run("save timer session", save_session, snapshot)

    def load_session(self) -> Optional[SessionSnapshot]:
        return self._run("load timer session", load_session)

    def clear_session(self) -> None:
        self._run("clear timer session", clear_session)
