"""Timer state machine: start/stop, Pomodoro cycling and idle detection.

The engine owns at most one ``TimerSession``. All transitions run to
completion on the caller's thread; periodic work (deadline checks, idle
sampling, autosave) happens in ``tick()``, which a UI loop or background
runner calls about once a second.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from .config import TimerSettings
from .db import PersistenceError
from .events import (
    BreakEnded,
    BreakStarted,
    EventCallback,
    IdleReturned,
    PomodoroTimeUp,
    TaskRecorded,
    TimerEvent,
    TimerStarted,
    TimerStopped,
)
from .idle import IdleProbe
from .models import SessionSnapshot, Task, duration_between
from .parsing import ParsedInput, parse_task_input

if TYPE_CHECKING:
    from .autosave import Autosave
    from .db import TaskStore

logger = logging.getLogger(__name__)


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXTENDED = "extended"
    ON_BREAK = "on_break"


class InvalidStartTimeError(ValueError):
    """Raised when a running timer's start time is moved out of bounds."""


@dataclass(slots=True)
class TimerSession:
    """The in-flight timer. Exists only between start and stop."""

    name_and_tags: str
    name: str
    start_time: datetime
    tags: str = ""
    project: Optional[str] = None
    rate: Optional[float] = None
    state: TimerState = TimerState.RUNNING
    deadline: Optional[datetime] = None
    long_break: bool = False
    time_up_notified: bool = False
    idle_start_time: Optional[datetime] = None
    idle_notified: bool = False
    idle_time_reached: bool = False
    time_at_sleep: Optional[datetime] = None
    idle_at_sleep: int = 0
    last_autosave: Optional[datetime] = None

    @classmethod
    def from_input(
        cls, raw: str, parsed: ParsedInput, start_time: datetime
    ) -> "TimerSession":
        session = cls(name_and_tags=raw, name=parsed.name, start_time=start_time)
        session.apply_input(raw, parsed)
        return session

    def apply_input(self, raw: str, parsed: ParsedInput) -> None:
        self.name_and_tags = raw
        self.name = parsed.name
        self.tags = parsed.tags_string
        self.project = parsed.project
        self.rate = parsed.rate

    def reset_idle(self) -> None:
        self.idle_notified = False
        self.idle_time_reached = False
        self.idle_start_time = None
        self.time_at_sleep = None
        self.idle_at_sleep = 0

    def to_snapshot(self, pomodoro_sessions: int) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state.value,
            name_and_tags=self.name_and_tags,
            start_time=self.start_time,
            deadline=self.deadline,
            pomodoro_sessions=pomodoro_sessions,
            long_break=self.long_break,
        )


class TimerEngine:
    """Single-session timer driving task creation in a ``TaskStore``."""

    def __init__(
        self,
        store: "TaskStore",
        settings: TimerSettings,
        *,
        clock: Callable[[], datetime] = datetime.now,
        idle_probe: Optional[IdleProbe] = None,
        autosave: Optional["Autosave"] = None,
        mirror_session: bool = False,
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock
        self.idle_probe = idle_probe
        self.autosave = autosave
        self.mirror_session = mirror_session
        self.session: Optional[TimerSession] = None
        self.pomodoro_sessions = 0
        self._subscribers: list[EventCallback] = []

    @property
    def state(self) -> TimerState:
        return self.session.state if self.session else TimerState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state in (TimerState.RUNNING, TimerState.EXTENDED)

    @property
    def supports_idle_sampling(self) -> bool:
        return self.idle_probe is not None

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register an observer; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, event: TimerEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Timer event observer failed for %s", event.kind)

    def _sync_mirror(self) -> None:
        if not self.mirror_session:
            return
        try:
            if self.session is None:
                self.store.clear_session()
            else:
                self.store.save_session(self.session.to_snapshot(self.pomodoro_sessions))
        except PersistenceError:
            logger.warning("Running timer could not be mirrored; resume may be stale.")

    # Transitions

    def start(self, name_and_tags: str) -> Optional[TimerSession]:
        """Start a work session. Raises ``TaskInputError`` on invalid input."""
        if self.session is not None:
            logger.debug("Ignoring start while timer is %s.", self.state.value)
            return None
        parsed = parse_task_input(name_and_tags, self.settings.currency)
        now = self.clock()
        session = TimerSession.from_input(name_and_tags, parsed, now)
        session.last_autosave = now
        if self.settings.pomodoro:
            self.pomodoro_sessions += 1
            session.deadline = now + self.settings.pomodoro_length
        self.session = session
        self._sync_mirror()
        logger.info("Timer started for %r at %s", session.name, now)
        self._emit(TimerStarted(session))
        return session

    def stop(self, stop_time: Optional[datetime] = None) -> Optional[Task]:
        """Stop the timer and record the task; a break records nothing."""
        session = self.session
        if session is None:
            logger.debug("Ignoring stop; no timer is running.")
            return None
        if session.state is TimerState.ON_BREAK:
            self._finish(None)
            return None
        task = self._record(session, stop_time or self.clock())
        self._finish(task)
        return task

    def discard(self) -> bool:
        """Drop the running session without recording anything."""
        if self.session is None:
            return False
        self._finish(None)
        return True

    def start_break(self) -> Optional[Task]:
        """Record the work segment and begin a Pomodoro break."""
        session = self.session
        if session is None or not self.settings.pomodoro or not self.is_running:
            return None
        now = self.clock()
        task = self._record(session, now)
        long_break = self.long_break_next()
        length = (
            self.settings.pomodoro_big_break_length
            if long_break
            else self.settings.pomodoro_intermission
        )
        session.state = TimerState.ON_BREAK
        session.start_time = now
        session.deadline = now + length
        session.long_break = long_break
        session.time_up_notified = False
        session.reset_idle()
        if self.autosave is not None:
            self.autosave.delete()
        self._sync_mirror()
        logger.info("Break started for %s (long=%s)", length, long_break)
        self._emit(BreakStarted(length=length, long_break=long_break, ends_at=session.deadline))
        return task

    def continue_work(self) -> Optional[TimerSession]:
        """End a break early and start the next work segment."""
        if self.session is None or self.session.state is not TimerState.ON_BREAK:
            return None
        return self._begin_work(self.clock())

    def add_more_time(self) -> Optional[datetime]:
        """Push the Pomodoro deadline back after time is up."""
        session = self.session
        if session is None or session.state is not TimerState.EXTENDED:
            return None
        session.deadline = self.clock() + self.settings.pomodoro_more_time
        session.time_up_notified = False
        self._sync_mirror()
        logger.info("Pomodoro extended until %s", session.deadline)
        return session.deadline

    def resolve_idle(self, discard: bool) -> Optional[Task]:
        """Answer the idle prompt: drop the idle span (stop) or keep counting."""
        session = self.session
        if session is None or not session.idle_notified:
            return None
        if discard:
            idle_start = session.idle_start_time or self.clock()
            logger.info("Discarding idle time since %s", idle_start)
            return self.stop(max(idle_start, session.start_time))
        session.reset_idle()
        logger.info("Keeping idle time; timer continues.")
        return None

    def update_input(self, name_and_tags: str) -> Optional[TimerSession]:
        """Re-parse the input of a running timer; invalid input changes nothing."""
        session = self.session
        if session is None or session.state is TimerState.ON_BREAK:
            return None
        if name_and_tags == session.name_and_tags:
            return session
        parsed = parse_task_input(name_and_tags, self.settings.currency)
        session.apply_input(name_and_tags, parsed)
        self._sync_mirror()
        return session

    def earliest_start_time(self) -> Optional[datetime]:
        """Earliest start a running Pomodoro may be moved back to."""
        if not self.settings.pomodoro:
            return None
        return self.clock() - (self.settings.pomodoro_length - timedelta(minutes=1))

    def adjust_start_time(self, new_start: datetime) -> Optional[TimerSession]:
        session = self.session
        if session is None or not self.is_running:
            return None
        now = self.clock()
        if new_start > now:
            raise InvalidStartTimeError("Start time cannot be in the future.")
        earliest = self.earliest_start_time()
        if earliest is not None and new_start < earliest:
            raise InvalidStartTimeError(
                f"Start time cannot be earlier than {earliest:%H:%M} in Pomodoro mode."
            )
        session.start_time = new_start
        if self.settings.pomodoro:
            session.deadline = new_start + self.settings.pomodoro_length
            session.state = TimerState.RUNNING
            session.time_up_notified = False
        self._sync_mirror()
        return session

    def reset_session_count(self) -> None:
        self.pomodoro_sessions = 0

    def long_break_next(self) -> bool:
        interval = self.settings.pomodoro_big_break_interval
        return (
            self.settings.pomodoro_big_break
            and self.pomodoro_sessions > 0
            and self.pomodoro_sessions % interval == 0
        )

    # Periodic work

    def tick(self, now: Optional[datetime] = None) -> None:
        session = self.session
        if session is None:
            return
        now = now or self.clock()

        if session.state is TimerState.ON_BREAK:
            if session.deadline is not None and now >= session.deadline:
                logger.info("Break over at %s", session.deadline)
                self._emit(BreakEnded(ended_at=session.deadline))
                self._begin_work(now)
            return

        if (
            self.settings.pomodoro
            and session.deadline is not None
            and now >= session.deadline
            and not session.time_up_notified
        ):
            session.state = TimerState.EXTENDED
            session.time_up_notified = True
            self._sync_mirror()
            logger.info("Pomodoro time up at %s", session.deadline)
            self._emit(
                PomodoroTimeUp(deadline=session.deadline, long_break_next=self.long_break_next())
            )

        if self.settings.idle_detect and self.idle_probe is not None:
            self._check_idle(session, now)

        if self.autosave is not None and session.last_autosave is not None:
            if now - session.last_autosave >= self.settings.autosave_interval:
                self.autosave.write(session, now)
                session.last_autosave = now

    def note_sleep(self, now: Optional[datetime] = None) -> None:
        """Remember when the machine went to sleep and how idle it already was."""
        session = self.session
        if not self._idle_sampling_active() or session is None:
            return
        now = now or self.clock()
        session.time_at_sleep = now
        session.idle_at_sleep = self.idle_probe.seconds_since_input()  # type: ignore[union-attr]
        session.idle_start_time = now - timedelta(seconds=session.idle_at_sleep)

    def note_wake(self, now: Optional[datetime] = None) -> None:
        """After wake, prompt for the idle span if it passed the threshold."""
        session = self.session
        if not self._idle_sampling_active() or session is None:
            return
        if session.time_at_sleep is None:
            return
        now = now or self.clock()
        asleep = duration_between(session.time_at_sleep, now)
        idle_after_sleep = asleep + session.idle_at_sleep
        session.time_at_sleep = None
        if idle_after_sleep > self._idle_threshold_seconds() and not session.idle_notified:
            session.idle_time_reached = True
            self._notify_idle_return(session, now)

    def elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        if self.session is None:
            return 0
        return max(duration_between(self.session.start_time, now or self.clock()), 0)

    def display_seconds(self, now: Optional[datetime] = None) -> int:
        """Seconds shown on the clock: countdown in Pomodoro, else elapsed."""
        session = self.session
        if session is None:
            if self.settings.pomodoro:
                return int(self.settings.pomodoro_length.total_seconds())
            return 0
        now = now or self.clock()
        if session.deadline is None:
            return self.elapsed_seconds(now)
        remaining = duration_between(now, session.deadline)
        if session.state is TimerState.EXTENDED:
            return abs(remaining)
        return max(remaining, 0)

    def resume(self, now: Optional[datetime] = None) -> Optional[TimerSession]:
        """Rebuild a session from the stored mirror after a restart."""
        if self.session is not None or not self.mirror_session:
            return None
        snapshot = self.store.load_session()
        if snapshot is None:
            return None
        try:
            parsed = parse_task_input(snapshot.name_and_tags, self.settings.currency)
            state = TimerState(snapshot.state)
        except ValueError:
            logger.warning("Discarding unreadable timer mirror %r", snapshot)
            self.store.clear_session()
            return None

        now = now or self.clock()
        session = TimerSession.from_input(snapshot.name_and_tags, parsed, snapshot.start_time)
        session.state = state
        session.deadline = snapshot.deadline
        session.long_break = snapshot.long_break
        session.time_up_notified = False
        session.last_autosave = now
        self.session = session
        self.pomodoro_sessions = snapshot.pomodoro_sessions
        logger.info("Resumed %s timer for %r", state.value, session.name)
        if self.autosave is not None:
            # The resumed session supersedes the crash snapshot.
            self.autosave.delete()
        self.tick(now)
        return self.session

    # Internals

    def _record(self, session: TimerSession, stop_time: datetime) -> Task:
        task = Task.create(
            session.name,
            session.start_time,
            stop_time,
            tags=session.tags,
            project=session.project,
            rate=session.rate,
        )
        self.store.create(task)
        logger.info("Recorded %r (%d seconds)", task.name, task.duration_seconds)
        self._emit(TaskRecorded(task))
        return task

    def _finish(self, task: Optional[Task]) -> None:
        self.session = None
        if self.autosave is not None:
            self.autosave.delete()
        self._sync_mirror()
        logger.info("Timer stopped.")
        self._emit(TimerStopped(task))

    def _begin_work(self, now: datetime) -> TimerSession:
        session = self.session
        assert session is not None
        self.pomodoro_sessions += 1
        session.state = TimerState.RUNNING
        session.start_time = now
        session.deadline = now + self.settings.pomodoro_length
        session.long_break = False
        session.time_up_notified = False
        session.last_autosave = now
        session.reset_idle()
        self._sync_mirror()
        logger.info("Work session %d started at %s", self.pomodoro_sessions, now)
        self._emit(TimerStarted(session))
        return session

    def _idle_sampling_active(self) -> bool:
        return self.settings.idle_detect and self.idle_probe is not None

    def _idle_threshold_seconds(self) -> int:
        return int(self.settings.idle_threshold.total_seconds())

    def _check_idle(self, session: TimerSession, now: datetime) -> None:
        threshold = self._idle_threshold_seconds()
        idle_seconds = self.idle_probe.seconds_since_input()  # type: ignore[union-attr]
        if idle_seconds < threshold and session.idle_time_reached and not session.idle_notified:
            self._notify_idle_return(session, now)
        elif idle_seconds >= threshold and not session.idle_time_reached:
            session.idle_time_reached = True
            session.idle_start_time = now - timedelta(seconds=idle_seconds)
            logger.debug("User idle since %s", session.idle_start_time)

    def _notify_idle_return(self, session: TimerSession, now: datetime) -> None:
        session.idle_notified = True
        idle_start = session.idle_start_time or now
        logger.info("User back after idling since %s", idle_start)
        self._emit(IdleReturned(idle_start=idle_start, resumed_at=now))
