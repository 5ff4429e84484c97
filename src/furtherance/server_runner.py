"""Helpers to launch the local web dashboard."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import AppSettings, load_settings
from .idle import default_idle_probe
from .paths import get_autosave_path, get_db_path, get_log_path, get_settings_path
from .webapp import create_app


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[AppSettings] = None,
    autosave_path: Optional[Path] = None,
    log_path: Optional[Path] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Start the FastAPI dashboard, its timer thread and optional browser tab."""
    _attach_log_file(log_path or get_log_path())
    app = create_app(
        db_path=db_path or get_db_path(),
        settings=settings or load_settings(get_settings_path()),
        autosave_path=autosave_path or get_autosave_path(),
        idle_probe=default_idle_probe(),
    )

    if open_browser:
        url = f"http://{host}:{port}/docs"
        threading.Thread(
            target=_launch_browser_after_delay, args=(url,), daemon=True
        ).start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _attach_log_file(path: Path) -> None:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    logging.getLogger("furtherance").addHandler(handler)


def _launch_browser_after_delay(url: str) -> None:
    time.sleep(1.0)
    try:
        webbrowser.open(url)
    except Exception:
        logging.getLogger(__name__).exception("Failed to launch browser for %s", url)
