"""Events emitted by the timer engine and the notifications they produce."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Callable, ClassVar, Optional, Union

from .formatting import format_idle_length
from .models import Task

if TYPE_CHECKING:
    from .timer import TimerSession


class EventKind(str, Enum):
    TIMER_STARTED = "timer_started"
    TASK_RECORDED = "task_recorded"
    TIMER_STOPPED = "timer_stopped"
    POMODORO_TIME_UP = "pomodoro_time_up"
    BREAK_STARTED = "break_started"
    BREAK_ENDED = "break_ended"
    IDLE_RETURNED = "idle_returned"


@dataclass(frozen=True)
class TimerStarted:
    kind: ClassVar[EventKind] = EventKind.TIMER_STARTED
    session: "TimerSession"


@dataclass(frozen=True)
class TaskRecorded:
    kind: ClassVar[EventKind] = EventKind.TASK_RECORDED
    task: Task


@dataclass(frozen=True)
class TimerStopped:
    kind: ClassVar[EventKind] = EventKind.TIMER_STOPPED
    task: Optional[Task]


@dataclass(frozen=True)
class PomodoroTimeUp:
    kind: ClassVar[EventKind] = EventKind.POMODORO_TIME_UP
    deadline: datetime
    long_break_next: bool


@dataclass(frozen=True)
class BreakStarted:
    kind: ClassVar[EventKind] = EventKind.BREAK_STARTED
    length: timedelta
    long_break: bool
    ends_at: datetime


@dataclass(frozen=True)
class BreakEnded:
    kind: ClassVar[EventKind] = EventKind.BREAK_ENDED
    ended_at: datetime


@dataclass(frozen=True)
class IdleReturned:
    kind: ClassVar[EventKind] = EventKind.IDLE_RETURNED
    idle_start: datetime
    resumed_at: datetime

    @property
    def idle_length(self) -> int:
        return int((self.resumed_at - self.idle_start).total_seconds())


TimerEvent = Union[
    TimerStarted,
    TaskRecorded,
    TimerStopped,
    PomodoroTimeUp,
    BreakStarted,
    BreakEnded,
    IdleReturned,
]

EventCallback = Callable[[TimerEvent], None]


def notification_text(event: TimerEvent) -> Optional[tuple[str, str]]:
    """Title and body of the system notification for ``event``, if any."""
    if isinstance(event, PomodoroTimeUp):
        return "Time's up!", "It's time to take a break."
    if isinstance(event, BreakEnded):
        return "Break's over!", "Time to get back to work."
    if isinstance(event, IdleReturned):
        return (
            f"You have been idle for {format_idle_length(event.idle_length)}",
            "Open Furtherance to continue or discard the idle time.",
        )
    return None
