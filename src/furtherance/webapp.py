"""FastAPI application that exposes a local web UI and API for Furtherance."""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict

from .autosave import Autosave, AutosaveError
from .config import AppSettings
from .csv_io import InvalidCSVError, export_csv, import_csv
from .db import PersistenceError, TaskStore
from .events import TimerEvent, notification_text
from .formatting import format_time_long, format_time_long_without_seconds
from .grouping import (
    FilterBy,
    Granularity,
    TaskAttribute,
    attribute_values,
    choose_granularity,
    filter_by_attribute,
    filter_tasks,
    group_by_calendar_bucket,
    group_history_by_day,
    report_by_tag,
    report_by_task,
    total_earnings,
    total_seconds,
)
from .idle import IdleProbe
from .models import InvalidTaskError, Shortcut, Task, TaskGroup
from .parsing import TaskInputError, parse_rate, separate_tags, validate_task_fields
from .paths import get_autosave_path, get_db_path
from .timeframes import DateRange, Timeframe, as_local, resolve_timeframe
from .timer import InvalidStartTimeError, TimerEngine

logger = logging.getLogger(__name__)


class TickRunner:
    """Call ``engine.tick()`` from a background thread."""

    def __init__(self, engine: TimerEngine, lock: threading.RLock) -> None:
        self._engine = engine
        self._lock = lock
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(target=self._run, args=(stop_event,), daemon=True)
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Timer tick thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Timer tick thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def _run(self, stop_event: threading.Event) -> None:
        interval = self._engine.settings.tick_interval.total_seconds()
        while not stop_event.is_set():
            with self._lock:
                try:
                    self._engine.tick()
                except PersistenceError:
                    logger.warning("Tick could not persist timer state.")
            stop_event.wait(interval)


class StartPayload(BaseModel):
    text: Optional[str] = None
    shortcut_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class StopPayload(BaseModel):
    stop_time: Optional[datetime] = None
    at_deadline: bool = False

    model_config = ConfigDict(extra="forbid")


class IdlePayload(BaseModel):
    discard: bool

    model_config = ConfigDict(extra="forbid")


class InputPayload(BaseModel):
    text: str

    model_config = ConfigDict(extra="forbid")


class StartTimePayload(BaseModel):
    start_time: datetime

    model_config = ConfigDict(extra="forbid")


class TaskPayload(BaseModel):
    name: str
    project: str = ""
    tags: str = ""
    rate: str = ""
    start_time: datetime
    stop_time: datetime

    model_config = ConfigDict(extra="forbid")


class TaskUpdate(BaseModel):
    name: Optional[str] = None
    project: Optional[str] = None
    tags: Optional[str] = None
    rate: Optional[str] = None
    start_time: Optional[datetime] = None
    stop_time: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


class GroupPayload(BaseModel):
    task_ids: list[str]

    model_config = ConfigDict(extra="forbid")


class GroupUpdate(BaseModel):
    task_ids: list[str]
    name: Optional[str] = None
    project: Optional[str] = None
    tags: Optional[str] = None
    rate: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ImportPayload(BaseModel):
    content: str

    model_config = ConfigDict(extra="forbid")


class ShortcutPayload(BaseModel):
    name: str
    project: str = ""
    tags: str = ""
    rate: str = ""
    color_hex: str = ""

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[AppSettings] = None,
    autosave_path: Optional[Path] = None,
    idle_probe: Optional[IdleProbe] = None,
    run_ticker: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or AppSettings()
    currency = resolved_settings.timer.currency
    store = TaskStore.open(resolved_db_path, check_same_thread=False)
    autosave = Autosave(autosave_path or get_autosave_path())
    engine = TimerEngine(
        store,
        resolved_settings.timer,
        idle_probe=idle_probe,
        autosave=autosave,
        mirror_session=True,
    )
    lock = threading.RLock()
    runner = TickRunner(engine, lock)
    notifications: deque[TimerEvent] = deque(maxlen=100)
    engine.subscribe(notifications.append)

    app = FastAPI(title="Furtherance", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.engine = engine
    app.state.store = store
    app.state.tick_runner = runner
    app.state.autosave = autosave
    app.state.lock = lock

    @contextmanager
    def locked() -> Iterator[None]:
        with lock:
            try:
                yield
            except TaskInputError as exc:
                raise HTTPException(status_code=400, detail=exc.message) from exc
            except (InvalidTaskError, InvalidStartTimeError) as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            except PersistenceError as exc:
                raise HTTPException(status_code=500, detail=str(exc)) from exc

    def start_timer(text: str) -> Dict[str, Any]:
        session = engine.start(text)
        if session is None:
            raise HTTPException(status_code=409, detail="A timer is already running.")
        return _status_payload(engine)

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        with lock:
            engine.resume()
        if run_ticker:
            runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()
        store.close()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        with lock:
            payload = _status_payload(engine)
            payload["autosave_exists"] = autosave.exists()
        payload["tick_running"] = request.app.state.tick_runner.is_running()
        payload["database_path"] = str(request.app.state.db_path)
        return payload

    @app.post("/api/timer/start")
    def timer_start(payload: StartPayload) -> Dict[str, Any]:
        with locked():
            text = payload.text
            if payload.shortcut_id:
                shortcut = store.get_shortcut(payload.shortcut_id)
                if shortcut is None:
                    raise HTTPException(status_code=404, detail="Shortcut not found")
                text = shortcut.input_text(currency)
            if not text:
                raise HTTPException(status_code=400, detail="text or shortcut_id is required")
            return start_timer(text)

    @app.post("/api/timer/stop")
    def timer_stop(payload: Optional[StopPayload] = None) -> Dict[str, Any]:
        payload = payload or StopPayload()
        with locked():
            stop_time = payload.stop_time
            if payload.at_deadline and engine.session and engine.session.deadline:
                stop_time = engine.session.deadline
            task = engine.stop(as_local(stop_time) if stop_time else None)
            return {"task": _task_payload(task) if task else None}

    @app.post("/api/timer/discard")
    def timer_discard() -> Dict[str, Any]:
        with locked():
            return {"discarded": engine.discard()}

    @app.post("/api/timer/break")
    def timer_break() -> Dict[str, Any]:
        with locked():
            task = engine.start_break()
            if task is None:
                raise HTTPException(status_code=409, detail="No Pomodoro session to break from.")
            return {"task": _task_payload(task), "status": _status_payload(engine)}

    @app.post("/api/timer/continue")
    def timer_continue() -> Dict[str, Any]:
        with locked():
            if engine.continue_work() is None:
                raise HTTPException(status_code=409, detail="Not on a break.")
            return _status_payload(engine)

    @app.post("/api/timer/more-time")
    def timer_more_time() -> Dict[str, Any]:
        with locked():
            deadline = engine.add_more_time()
            if deadline is None:
                raise HTTPException(status_code=409, detail="Pomodoro time is not up.")
            return _status_payload(engine)

    @app.post("/api/timer/idle")
    def timer_idle(payload: IdlePayload) -> Dict[str, Any]:
        with locked():
            task = engine.resolve_idle(payload.discard)
            return {"task": _task_payload(task) if task else None, "status": _status_payload(engine)}

    @app.post("/api/timer/input")
    def timer_input(payload: InputPayload) -> Dict[str, Any]:
        with locked():
            if engine.update_input(payload.text) is None:
                raise HTTPException(status_code=409, detail="No timer is running.")
            return _status_payload(engine)

    @app.post("/api/timer/start-time")
    def timer_start_time(payload: StartTimePayload) -> Dict[str, Any]:
        with locked():
            if engine.adjust_start_time(as_local(payload.start_time)) is None:
                raise HTTPException(status_code=409, detail="No timer is running.")
            return _status_payload(engine)

    @app.get("/api/notifications")
    def list_notifications() -> Dict[str, Any]:
        with lock:
            events = list(notifications)
            notifications.clear()
        payload = []
        for event in events:
            text = notification_text(event)
            if text is None:
                continue
            title, body = text
            payload.append({"kind": event.kind.value, "title": title, "body": body})
        return {"notifications": payload}

    @app.get("/api/tasks")
    def list_tasks(
        timeframe: Timeframe = Query(default=Timeframe.PAST_7_DAYS),
        start: Optional[str] = Query(default=None, description="YYYY-MM-DD, custom range"),
        end: Optional[str] = Query(default=None, description="YYYY-MM-DD, custom range"),
    ) -> Dict[str, Any]:
        date_range = _resolve_range(timeframe, start, end, resolved_settings)
        with locked():
            tasks = store.query(date_range.start, date_range.end)
        return {
            "start": date_range.start.isoformat(),
            "end": date_range.end.isoformat(),
            "total_seconds": total_seconds(tasks),
            "total_earnings": total_earnings(tasks),
            "tasks": [_task_payload(task) for task in tasks],
        }

    @app.get("/api/history")
    def history() -> Dict[str, Any]:
        report = resolved_settings.report
        with locked():
            tasks = store.all()
        sections = group_history_by_day(tasks, limit=report.history_limit)
        fmt = format_time_long if report.show_seconds else format_time_long_without_seconds
        return {
            "show_daily_sum": report.show_daily_sum,
            "sections": [
                {
                    "label": section.label,
                    "date": section.day.isoformat(),
                    "total_seconds": section.total_seconds,
                    "total_formatted": fmt(section.total_seconds),
                    "groups": [_group_payload(group) for group in section.groups],
                }
                for section in sections
            ]
        }

    @app.post("/api/tasks")
    def add_task(payload: TaskPayload) -> Dict[str, Any]:
        errors = validate_task_fields(
            payload.name, payload.project, payload.tags, payload.rate, currency
        )
        if errors:
            raise HTTPException(status_code=400, detail="\n".join(errors))
        with locked():
            task = Task.create(
                payload.name.strip(),
                as_local(payload.start_time),
                as_local(payload.stop_time),
                tags=separate_tags(payload.tags),
                project=payload.project.strip(),
                rate=parse_rate(payload.rate) if payload.rate.strip() else 0.0,
            )
            store.create(task)
        return _task_payload(task)

    @app.patch("/api/tasks/{task_id}")
    def update_task_endpoint(task_id: str, payload: TaskUpdate) -> Dict[str, Any]:
        updates = payload.model_dump(exclude_unset=True)
        errors = _validate_changes(updates, currency)
        if errors:
            raise HTTPException(status_code=400, detail="\n".join(errors))
        with locked():
            task = store.get(task_id)
            if task is None:
                raise HTTPException(status_code=404, detail="Task not found")
            edited = task.with_changes(**_normalize_changes(updates))
            try:
                store.update(edited)
            except ValueError as exc:
                raise HTTPException(status_code=404, detail="Task not found") from exc
        return _task_payload(edited)

    @app.delete("/api/tasks/{task_id}")
    def delete_task_endpoint(task_id: str) -> Dict[str, Any]:
        with locked():
            try:
                store.delete(task_id)
            except ValueError as exc:
                raise HTTPException(status_code=404, detail="Task not found") from exc
        return {"deleted": 1}

    @app.delete("/api/tasks")
    def delete_all_endpoint() -> Dict[str, Any]:
        with locked():
            return {"deleted": store.delete_all()}

    @app.post("/api/groups/delete")
    def delete_group(payload: GroupPayload) -> Dict[str, Any]:
        with locked():
            return {"deleted": store.delete_many(payload.task_ids)}

    @app.patch("/api/groups")
    def update_group(payload: GroupUpdate) -> Dict[str, Any]:
        updates = payload.model_dump(exclude_unset=True, exclude={"task_ids"})
        errors = _validate_changes(updates, currency)
        if errors:
            raise HTTPException(status_code=400, detail="\n".join(errors))
        with locked():
            changed = store.update_many(payload.task_ids, **_normalize_changes(updates))
        return {"updated": changed}

    @app.post("/api/tasks/{task_id}/repeat")
    def repeat_task(task_id: str) -> Dict[str, Any]:
        with locked():
            task = store.get(task_id)
            if task is None:
                raise HTTPException(status_code=404, detail="Task not found")
            return start_timer(task.input_text(currency))

    @app.post("/api/repeat-last")
    def repeat_last() -> Dict[str, Any]:
        with locked():
            task = store.last()
            if task is None:
                raise HTTPException(status_code=404, detail="No task to repeat")
            return start_timer(task.input_text(currency))

    @app.get("/api/report")
    def report(
        timeframe: Timeframe = Query(default=Timeframe.PAST_7_DAYS),
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
        granularity: Optional[Granularity] = Query(default=None),
        attribute: TaskAttribute = Query(default=TaskAttribute.TITLE),
        value: Optional[str] = Query(default=None),
        filter_by: FilterBy = Query(default=FilterBy.NONE),
        filter_text: str = Query(default=""),
        exact: bool = Query(default=False),
    ) -> Dict[str, Any]:
        date_range = _resolve_range(timeframe, start, end, resolved_settings)
        first_weekday = resolved_settings.report.first_weekday
        with locked():
            tasks = store.query(date_range.start, date_range.end)
        tasks = filter_tasks(tasks, filter_by, filter_text, exact)
        chosen = granularity or choose_granularity(date_range)
        buckets = group_by_calendar_bucket(tasks, chosen, first_weekday=first_weekday)

        values = attribute_values(tasks, attribute)
        selected = value if value is not None else (values[0] if values else None)
        selection_buckets = (
            group_by_calendar_bucket(
                filter_by_attribute(tasks, attribute, selected),
                chosen,
                first_weekday=first_weekday,
            )
            if selected is not None
            else []
        )
        return {
            "start": date_range.start.isoformat(),
            "end": date_range.end.isoformat(),
            "granularity": chosen.value,
            "total_seconds": total_seconds(tasks),
            "total_earnings": total_earnings(tasks),
            "buckets": [_bucket_payload(bucket) for bucket in buckets],
            "attribute": attribute.value,
            "attribute_values": values,
            "selected_value": selected,
            "selection_buckets": [_bucket_payload(bucket) for bucket in selection_buckets],
            "by_task": [_report_payload(entry) for entry in report_by_task(tasks)],
            "by_tag": [_report_payload(entry) for entry in report_by_tag(tasks)],
        }

    @app.get("/api/export.csv")
    def export() -> Response:
        with locked():
            tasks = store.all()
        return Response(
            content=export_csv(tasks),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="Furtherance.csv"'},
        )

    @app.post("/api/import")
    def import_tasks(payload: ImportPayload) -> Dict[str, Any]:
        try:
            tasks = import_csv(payload.content)
        except InvalidCSVError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        with locked():
            imported = store.create_many(tasks)
        return {"imported": imported}

    @app.get("/api/shortcuts")
    def list_shortcuts() -> Dict[str, Any]:
        with locked():
            shortcuts = store.shortcuts()
        return {"shortcuts": [_shortcut_payload(shortcut, currency) for shortcut in shortcuts]}

    @app.post("/api/shortcuts")
    def create_shortcut(payload: ShortcutPayload) -> Dict[str, Any]:
        shortcut = _shortcut_from_payload(payload, currency)
        with locked():
            store.create_shortcut(shortcut)
        return _shortcut_payload(shortcut, currency)

    @app.patch("/api/shortcuts/{shortcut_id}")
    def update_shortcut_endpoint(shortcut_id: str, payload: ShortcutPayload) -> Dict[str, Any]:
        shortcut = _shortcut_from_payload(payload, currency, shortcut_id=shortcut_id)
        with locked():
            try:
                store.update_shortcut(shortcut)
            except ValueError as exc:
                raise HTTPException(status_code=404, detail="Shortcut not found") from exc
        return _shortcut_payload(shortcut, currency)

    @app.delete("/api/shortcuts/{shortcut_id}")
    def delete_shortcut_endpoint(shortcut_id: str) -> Dict[str, Any]:
        with locked():
            try:
                store.delete_shortcut(shortcut_id)
            except ValueError as exc:
                raise HTTPException(status_code=404, detail="Shortcut not found") from exc
        return {"deleted": 1}

    @app.get("/api/autosave")
    def autosave_status() -> Dict[str, Any]:
        with locked():
            if not autosave.exists():
                return {"exists": False, "task": None}
            try:
                task = autosave.read()
            except (OSError, AutosaveError) as exc:
                raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {"exists": True, "task": _task_payload(task)}

    @app.post("/api/autosave/restore")
    def autosave_restore() -> Dict[str, Any]:
        with locked():
            try:
                task = autosave.restore(store)
            except AutosaveError as exc:
                raise HTTPException(status_code=500, detail=str(exc)) from exc
        if task is None:
            raise HTTPException(status_code=409, detail="No autosave to restore.")
        return _task_payload(task)

    @app.delete("/api/autosave")
    def autosave_delete() -> Dict[str, Any]:
        with locked():
            autosave.delete()
        return {"deleted": True}

    return app


def _parse_date(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def _resolve_range(
    timeframe: Timeframe,
    start: Optional[str],
    end: Optional[str],
    settings: AppSettings,
) -> DateRange:
    if start or end:
        timeframe = Timeframe.CUSTOM
    return resolve_timeframe(
        timeframe,
        custom_start=_parse_date(start) if start else None,
        custom_end=_parse_date(end) if end else None,
        first_weekday=settings.report.first_weekday,
    )


def _validate_changes(updates: Dict[str, Any], currency: str) -> list[str]:
    """Validate only the fields present in a partial update."""
    return validate_task_fields(
        updates["name"] or "" if "name" in updates else None,
        updates.get("project") or "",
        updates.get("tags") or "",
        updates.get("rate") or "",
        currency,
    )


def _normalize_changes(updates: Dict[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for key, value in updates.items():
        if value is None:
            continue
        if key in ("name", "project"):
            changes[key] = value.strip()
        elif key == "tags":
            changes[key] = separate_tags(value)
        elif key == "rate":
            changes[key] = parse_rate(value) if value.strip() else 0.0
        else:
            changes[key] = as_local(value)
    return changes


def _status_payload(engine: TimerEngine) -> Dict[str, Any]:
    session = engine.session
    display = engine.display_seconds()
    payload: Dict[str, Any] = {
        "state": engine.state.value,
        "elapsed_seconds": engine.elapsed_seconds(),
        "display_seconds": display,
        "display": format_time_long(display),
        "pomodoro": engine.settings.pomodoro,
        "pomodoro_sessions": engine.pomodoro_sessions,
        "long_break_next": engine.long_break_next(),
        "supports_idle_sampling": engine.supports_idle_sampling,
        "session": None,
    }
    if session is not None:
        payload["session"] = {
            "name_and_tags": session.name_and_tags,
            "name": session.name,
            "tags": session.tags,
            "project": session.project,
            "rate": session.rate,
            "start_time": session.start_time.isoformat(),
            "deadline": session.deadline.isoformat() if session.deadline else None,
            "long_break": session.long_break,
            "idle_pending": session.idle_notified,
            "idle_start_time": (
                session.idle_start_time.isoformat() if session.idle_start_time else None
            ),
        }
    return payload


def _task_payload(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "name": task.name,
        "tags": task.tags,
        "project": task.project,
        "rate": task.rate,
        "start_time": task.start_time.isoformat(),
        "stop_time": task.stop_time.isoformat(),
        "duration_seconds": task.duration_seconds,
        "earnings": task.earnings,
    }


def _group_payload(group: TaskGroup) -> Dict[str, Any]:
    return {
        "name": group.name,
        "tags": group.tags,
        "project": group.project,
        "rate": group.rate,
        "total_seconds": group.total_seconds,
        "total_earnings": group.total_earnings,
        "tasks": [_task_payload(task) for task in group.tasks],
    }


def _bucket_payload(bucket: Any) -> Dict[str, Any]:
    return {
        "label": bucket.label,
        "period_start": bucket.period_start.isoformat(),
        "total_seconds": bucket.total_seconds,
        "earnings": bucket.earnings,
        "task_count": bucket.task_count,
        "average_seconds": bucket.average_seconds,
        "average_earnings": bucket.average_earnings,
    }


def _report_payload(entry: Any) -> Dict[str, Any]:
    return {
        "heading": entry.heading,
        "total_seconds": entry.total_seconds,
        "breakdown": [
            {"label": label, "seconds": seconds} for label, seconds in entry.breakdown.items()
        ],
    }


def _shortcut_from_payload(
    payload: ShortcutPayload, currency: str, shortcut_id: Optional[str] = None
) -> Shortcut:
    errors = validate_task_fields(
        payload.name, payload.project, payload.tags, payload.rate, currency
    )
    if errors:
        raise HTTPException(status_code=400, detail="\n".join(errors))
    shortcut = Shortcut(
        name=payload.name.strip(),
        tags=separate_tags(payload.tags),
        project=payload.project.strip(),
        rate=parse_rate(payload.rate) if payload.rate.strip() else 0.0,
        color_hex=payload.color_hex,
    )
    if shortcut_id is not None:
        shortcut.id = shortcut_id
    return shortcut


def _shortcut_payload(shortcut: Shortcut, currency: str) -> Dict[str, Any]:
    return {
        "id": shortcut.id,
        "name": shortcut.name,
        "tags": shortcut.tags,
        "project": shortcut.project,
        "rate": shortcut.rate,
        "color_hex": shortcut.color_hex,
        "input_text": shortcut.input_text(currency),
    }
