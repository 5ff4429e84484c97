"""Configuration models and helpers for Furtherance."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TimerSettings:
    """Runtime configuration for the timer engine."""

    pomodoro: bool = False
    pomodoro_length: timedelta = timedelta(minutes=25)
    pomodoro_more_time: timedelta = timedelta(minutes=5)
    pomodoro_intermission: timedelta = timedelta(minutes=5)
    pomodoro_big_break: bool = False
    pomodoro_big_break_interval: int = 4
    pomodoro_big_break_length: timedelta = timedelta(minutes=25)
    idle_detect: bool = False
    idle_threshold: timedelta = timedelta(minutes=6)
    tick_interval: timedelta = timedelta(seconds=1)
    autosave_interval: timedelta = timedelta(seconds=60)
    currency: str = "$"

    @classmethod
    def from_minutes(
        cls,
        *,
        pomodoro: bool = False,
        pomodoro_minutes: float = 25,
        more_time_minutes: float = 5,
        intermission_minutes: float = 5,
        big_break: bool = False,
        big_break_interval: int = 4,
        big_break_minutes: float = 25,
        idle_detect: bool = False,
        idle_minutes: float = 6,
        currency: str = "$",
    ) -> "TimerSettings":
        return cls(
            pomodoro=pomodoro,
            pomodoro_length=timedelta(minutes=pomodoro_minutes),
            pomodoro_more_time=timedelta(minutes=more_time_minutes),
            pomodoro_intermission=timedelta(minutes=intermission_minutes),
            pomodoro_big_break=big_break,
            pomodoro_big_break_interval=max(int(big_break_interval), 1),
            pomodoro_big_break_length=timedelta(minutes=big_break_minutes),
            idle_detect=idle_detect,
            idle_threshold=timedelta(minutes=idle_minutes),
            currency=currency,
        )


@dataclass(slots=True)
class ReportSettings:
    """Display preferences for history and reports."""

    first_weekday: int = 0
    show_seconds: bool = True
    show_daily_sum: bool = True
    limit_history: bool = True
    history_list_limit: int = 10

    @property
    def history_limit(self) -> Optional[int]:
        return self.history_list_limit if self.limit_history else None


@dataclass(slots=True)
class AppSettings:
    timer: TimerSettings = field(default_factory=TimerSettings)
    report: ReportSettings = field(default_factory=ReportSettings)


class SettingsFile(BaseModel):
    """On-disk schema of ``settings.json``."""

    pomodoro: bool = False
    pomodoro_minutes: int = Field(25, ge=1, le=1440)
    pomodoro_more_time_minutes: int = Field(5, ge=1, le=180)
    pomodoro_intermission_minutes: int = Field(5, ge=1, le=300)
    pomodoro_big_break: bool = False
    pomodoro_big_break_interval: int = Field(4, ge=1, le=50)
    pomodoro_big_break_minutes: int = Field(25, ge=1, le=180)
    idle_detect: bool = False
    idle_minutes: int = Field(6, ge=1, le=1440)
    currency: str = Field("$", min_length=1, max_length=1)
    first_weekday: int = Field(0, ge=0, le=6)
    show_seconds: bool = True
    show_daily_sum: bool = True
    limit_history: bool = True
    history_list_limit: int = Field(10, ge=1, le=1000)

    model_config = ConfigDict(extra="forbid")

    def to_settings(self) -> AppSettings:
        return AppSettings(
            timer=TimerSettings.from_minutes(
                pomodoro=self.pomodoro,
                pomodoro_minutes=self.pomodoro_minutes,
                more_time_minutes=self.pomodoro_more_time_minutes,
                intermission_minutes=self.pomodoro_intermission_minutes,
                big_break=self.pomodoro_big_break,
                big_break_interval=self.pomodoro_big_break_interval,
                big_break_minutes=self.pomodoro_big_break_minutes,
                idle_detect=self.idle_detect,
                idle_minutes=self.idle_minutes,
                currency=self.currency,
            ),
            report=ReportSettings(
                first_weekday=self.first_weekday,
                show_seconds=self.show_seconds,
                show_daily_sum=self.show_daily_sum,
                limit_history=self.limit_history,
                history_list_limit=self.history_list_limit,
            ),
        )

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "SettingsFile":
        timer = settings.timer
        report = settings.report
        return cls(
            pomodoro=timer.pomodoro,
            pomodoro_minutes=_minutes(timer.pomodoro_length),
            pomodoro_more_time_minutes=_minutes(timer.pomodoro_more_time),
            pomodoro_intermission_minutes=_minutes(timer.pomodoro_intermission),
            pomodoro_big_break=timer.pomodoro_big_break,
            pomodoro_big_break_interval=timer.pomodoro_big_break_interval,
            pomodoro_big_break_minutes=_minutes(timer.pomodoro_big_break_length),
            idle_detect=timer.idle_detect,
            idle_minutes=_minutes(timer.idle_threshold),
            currency=timer.currency,
            first_weekday=report.first_weekday,
            show_seconds=report.show_seconds,
            show_daily_sum=report.show_daily_sum,
            limit_history=report.limit_history,
            history_list_limit=report.history_list_limit,
        )


def _minutes(value: timedelta) -> int:
    return int(value.total_seconds() // 60)


def load_settings(path: Path) -> AppSettings:
    """Read settings from ``path``; a missing file yields the defaults."""
    path = Path(path)
    if not path.exists():
        return AppSettings()
    payload = json.loads(path.read_text(encoding="utf-8"))
    return SettingsFile.model_validate(payload).to_settings()


def save_settings(settings: AppSettings, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        SettingsFile.from_settings(settings).model_dump_json(indent=2),
        encoding="utf-8",
    )
    logger.debug("Saved settings to %s", path)
