"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import ReportSettings
from .db import database_connection, fetch_tasks_between
from .formatting import format_earnings, format_time_long
from .grouping import (
    choose_granularity,
    group_by_calendar_bucket,
    report_by_task,
    total_earnings,
    total_seconds,
)
from .timeframes import Timeframe, resolve_timeframe


class SummaryPrinter:
    """Render human-readable reports in the console."""

    def __init__(self, db_path: Path, settings: Optional[ReportSettings] = None) -> None:
        self.db_path = Path(db_path)
        self.settings = settings or ReportSettings()

    def print_report(
        self,
        timeframe: Timeframe,
        custom_start: Optional[datetime] = None,
        custom_end: Optional[datetime] = None,
        currency: str = "$",
    ) -> None:
        date_range = resolve_timeframe(
            timeframe,
            custom_start=custom_start,
            custom_end=custom_end,
            first_weekday=self.settings.first_weekday,
        )
        with database_connection(self.db_path) as conn:
            tasks = fetch_tasks_between(conn, date_range.start, date_range.end)

        print(
            f"Report for {date_range.start.strftime('%Y-%m-%d')}"
            f" to {date_range.end.strftime('%Y-%m-%d')}"
        )
        print("-" * 40)
        if not tasks:
            print("No tasks recorded in the selected timeframe.")
            return

        earnings = total_earnings(tasks)
        print(f"Total time: {format_time_long(total_seconds(tasks))}")
        if earnings > 0:
            print(f"Earnings:   {format_earnings(earnings, currency)}")
        print()

        granularity = choose_granularity(date_range)
        buckets = group_by_calendar_bucket(
            tasks, granularity, first_weekday=self.settings.first_weekday
        )
        print(f"By {granularity.value}:")
        for bucket in buckets:
            if bucket.task_count == 0:
                continue
            print(f"  {bucket.label:<12} {format_time_long(bucket.total_seconds)}")

        print()
        print("By task:")
        for entry in report_by_task(tasks):
            print(f"  {entry.heading[:45]:<45} {format_time_long(entry.total_seconds)}")
            for label, seconds in entry.breakdown.items():
                print(f"      {label[:41]:<41} {format_time_long(seconds)}")
