"""Command-line interface for Furtherance."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from .config import load_settings
from .db import PersistenceError, TaskStore
from .paths import get_autosave_path, get_db_path, get_settings_path
from .server_runner import run_dashboard
from .timeframes import Timeframe, as_local

app = typer.Typer(help="Local-first task timer with Pomodoro and reports.")

DB_OPTION = typer.Option(
    None, "--db", path_type=Path, help="Location of the Furtherance SQLite database."
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _parse_date(value: str, option: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise typer.BadParameter("expected YYYY-MM-DD", param_hint=option)


def _parse_datetime(value: str, option: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter("expected YYYY-MM-DD HH:MM[:SS]", param_hint=option)
    return as_local(parsed)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    db_path: Optional[Path] = DB_OPTION,
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the interactive API docs in your default browser.",
    ),
) -> None:
    """Start the local dashboard with the timer running in the background."""
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=load_settings(get_settings_path()),
        open_browser=open_browser,
    )


@app.command()
def report(
    timeframe: Timeframe = typer.Option(
        Timeframe.PAST_7_DAYS, "--timeframe", "-t", help="Predefined reporting window."
    ),
    start: Optional[str] = typer.Option(
        None, "--start", help="Custom range start (YYYY-MM-DD)."
    ),
    end: Optional[str] = typer.Option(None, "--end", help="Custom range end (YYYY-MM-DD)."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Print totals, a time chart and a per-task breakdown."""
    from .reporting import SummaryPrinter

    settings = load_settings(get_settings_path())
    custom_start = _parse_date(start, "--start") if start else None
    custom_end = _parse_date(end, "--end") if end else None
    if custom_start or custom_end:
        timeframe = Timeframe.CUSTOM
    printer = SummaryPrinter(db_path=db_path or get_db_path(), settings=settings.report)
    printer.print_report(
        timeframe,
        custom_start=custom_start,
        custom_end=custom_end,
        currency=settings.timer.currency,
    )


@app.command()
def export(
    path: Path = typer.Argument(..., help="Destination CSV file."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Write every task to a CSV file."""
    from .csv_io import write_csv_file

    store = TaskStore.open(db_path or get_db_path())
    try:
        tasks = store.all()
    except PersistenceError as exc:
        raise _fail(str(exc))
    finally:
        store.close()
    write_csv_file(path, tasks)
    typer.echo(f"Exported {len(tasks)} tasks to {path}")


@app.command("import")
def import_tasks(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV file to import."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Add the tasks from an exported CSV file; a bad file imports nothing."""
    from .csv_io import InvalidCSVError, read_csv_file

    try:
        tasks = read_csv_file(path)
    except InvalidCSVError as exc:
        raise _fail(str(exc))
    store = TaskStore.open(db_path or get_db_path())
    try:
        imported = store.create_many(tasks)
    except PersistenceError as exc:
        raise _fail(str(exc))
    finally:
        store.close()
    typer.echo(f"Imported {imported} tasks from {path}")


@app.command()
def add(
    name_and_tags: str = typer.Argument(..., help="Task input, e.g. 'Write report @work #docs $50'."),
    start: str = typer.Option(..., "--start", help="Start time (YYYY-MM-DD HH:MM[:SS])."),
    stop: str = typer.Option(..., "--stop", help="Stop time (YYYY-MM-DD HH:MM[:SS])."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Record a completed task without running the timer."""
    from .models import Task
    from .parsing import TaskInputError, parse_task_input

    currency = load_settings(get_settings_path()).timer.currency
    try:
        parsed = parse_task_input(name_and_tags, currency)
    except TaskInputError as exc:
        raise _fail(exc.message)
    start_time = _parse_datetime(start, "--start")
    stop_time = _parse_datetime(stop, "--stop")
    if stop_time < start_time:
        raise _fail("Start time must be before stop time.")

    task = Task.create(
        parsed.name,
        start_time,
        stop_time,
        tags=parsed.tags_string,
        project=parsed.project,
        rate=parsed.rate,
    )
    store = TaskStore.open(db_path or get_db_path())
    try:
        store.create(task)
    except PersistenceError as exc:
        raise _fail(str(exc))
    finally:
        store.close()
    typer.echo(f"Added {task.name} ({task.duration_seconds} seconds)")


@app.command("restore-autosave")
def restore_autosave(db_path: Optional[Path] = DB_OPTION) -> None:
    """Save the task left behind by an interrupted timer."""
    from .autosave import Autosave, AutosaveError

    autosave = Autosave(get_autosave_path())
    if not autosave.exists():
        typer.echo("No autosave found.")
        return
    store = TaskStore.open(db_path or get_db_path())
    try:
        task = autosave.restore(store)
    except (AutosaveError, PersistenceError) as exc:
        raise _fail(str(exc))
    finally:
        store.close()
    if task is not None:
        typer.echo(f"Restored {task.name} ({task.duration_seconds} seconds)")


@app.command("delete-all")
def delete_all(
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Permanently delete every recorded task."""
    if not yes:
        typer.confirm("Delete all tasks? This cannot be undone.", abort=True)
    store = TaskStore.open(db_path or get_db_path())
    try:
        deleted = store.delete_all()
    except PersistenceError as exc:
        raise _fail(str(exc))
    finally:
        store.close()
    typer.echo(f"Deleted {deleted} tasks.")
