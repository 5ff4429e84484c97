"""Domain models for recorded tasks."""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .parsing import ParsedInput, format_task_input, split_tags


class InvalidTaskError(ValueError):
    """Raised when a task's fields violate its invariants."""


def duration_between(start: datetime, stop: datetime) -> int:
    """Whole seconds between two timestamps; fractions are truncated."""
    return int((stop - start).total_seconds())


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class Task:
    """A completed block of time spent on a named task."""

    name: str
    start_time: datetime
    stop_time: datetime
    tags: str = ""
    project: str = ""
    rate: float = 0.0
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise InvalidTaskError("Task name cannot be empty.")
        if self.stop_time < self.start_time:
            raise InvalidTaskError("stop_time must not be before start_time")
        if self.rate < 0:
            raise InvalidTaskError("rate must not be negative")

    @classmethod
    def create(
        cls,
        name: str,
        start_time: datetime,
        stop_time: datetime,
        *,
        tags: str = "",
        project: Optional[str] = None,
        rate: Optional[float] = None,
    ) -> "Task":
        return cls(
            name=name,
            start_time=start_time,
            stop_time=stop_time,
            tags=tags,
            project=project or "",
            rate=rate or 0.0,
        )

    @property
    def duration_seconds(self) -> int:
        return duration_between(self.start_time, self.stop_time)

    @property
    def earnings(self) -> float:
        if self.rate <= 0:
            return 0.0
        return (self.rate / 3600.0) * self.duration_seconds

    @property
    def tag_list(self) -> list[str]:
        return split_tags(self.tags)

    def with_changes(self, **changes: Any) -> "Task":
        """Return an edited copy; the copy is validated like a new task."""
        return dataclasses.replace(self, **changes)

    def input_text(self, currency: str = "$") -> str:
        """Timer input that would start this task again."""
        return format_task_input(
            ParsedInput(
                name=self.name,
                tags=tuple(self.tag_list),
                project=self.project or None,
                rate=self.rate or None,
            ),
            currency,
        )


@dataclass(slots=True)
class TaskGroup:
    """Tasks that share a name and tag string, shown as one history row."""

    name: str
    tags: str
    project: str = ""
    rate: float = 0.0
    tasks: list[Task] = field(default_factory=list)

    @classmethod
    def from_task(cls, task: Task) -> "TaskGroup":
        return cls(
            name=task.name,
            tags=task.tags,
            project=task.project,
            rate=task.rate,
            tasks=[task],
        )

    def add(self, task: Task) -> None:
        self.tasks.append(task)

    def sort_tasks(self) -> None:
        self.tasks.sort(key=lambda task: task.start_time, reverse=True)

    @property
    def total_seconds(self) -> int:
        return sum(task.duration_seconds for task in self.tasks)

    @property
    def total_earnings(self) -> float:
        return sum(task.earnings for task in self.tasks)


@dataclass(slots=True)
class TimeGroupedBucket:
    """Tasks falling into one calendar period of a report chart."""

    label: str
    period_start: datetime
    tasks: list[Task] = field(default_factory=list)

    def add(self, task: Task) -> None:
        self.tasks.append(task)

    @property
    def total_seconds(self) -> int:
        return sum(task.duration_seconds for task in self.tasks)

    @property
    def earnings(self) -> float:
        return sum(task.earnings for task in self.tasks)

    @property
    def task_count(self) -> int:
        return len(self.tasks)

    @property
    def average_seconds(self) -> int:
        if not self.tasks:
            return 0
        return self.total_seconds // self.task_count

    @property
    def average_earnings(self) -> float:
        if not self.tasks:
            return 0.0
        return self.earnings / self.task_count


@dataclass(slots=True)
class SessionSnapshot:
    """Persisted mirror of the running timer, used to resume after a restart."""

    state: str
    name_and_tags: str
    start_time: datetime
    deadline: Optional[datetime] = None
    pomodoro_sessions: int = 0
    long_break: bool = False


@dataclass(slots=True)
class Shortcut:
    """A saved template that starts a timer with preset fields."""

    name: str
    tags: str = ""
    project: str = ""
    rate: float = 0.0
    color_hex: str = ""
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise InvalidTaskError("Shortcut name cannot be empty.")
        if self.rate < 0:
            raise InvalidTaskError("rate must not be negative")

    def input_text(self, currency: str = "$") -> str:
        return format_task_input(
            ParsedInput(
                name=self.name,
                tags=tuple(split_tags(self.tags)),
                project=self.project or None,
                rate=self.rate or None,
            ),
            currency,
        )
