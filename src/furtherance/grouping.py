"""Group and aggregate completed tasks for history rows and report charts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Sequence

from .models import Task, TaskGroup, TimeGroupedBucket
from .parsing import NO_TAGS_LABEL
from .timeframes import DateRange, start_of_day, start_of_month, start_of_week


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class TaskAttribute(str, Enum):
    TITLE = "title"
    PROJECT = "project"
    TAGS = "tags"
    RATE = "rate"


class FilterBy(str, Enum):
    NONE = "none"
    TASK = "task"
    TAGS = "tags"


def total_seconds(tasks: Iterable[Task]) -> int:
    return sum(task.duration_seconds for task in tasks)


def total_earnings(tasks: Iterable[Task]) -> float:
    return sum(task.earnings for task in tasks)


def group_by_name_and_tags(tasks: Iterable[Task]) -> list[TaskGroup]:
    """Collect tasks sharing name and tags, keeping first-encounter order."""
    groups: list[TaskGroup] = []
    index: dict[tuple[str, str], TaskGroup] = {}
    for task in tasks:
        key = (task.name, task.tags)
        group = index.get(key)
        if group is None:
            group = TaskGroup.from_task(task)
            index[key] = group
            groups.append(group)
        else:
            group.add(task)
    return groups


@dataclass(slots=True)
class HistoryDay:
    """One dated section of the history list."""

    label: str
    day: date
    groups: list[TaskGroup] = field(default_factory=list)

    @property
    def total_seconds(self) -> int:
        return sum(group.total_seconds for group in self.groups)

    @property
    def tasks(self) -> list[Task]:
        return [task for group in self.groups for task in group.tasks]


def relative_day_label(day: date, today: date) -> str:
    if day == today:
        return "today"
    if day == today - timedelta(days=1):
        return "yesterday"
    return day.strftime("%b %d, %Y")


def group_history_by_day(
    tasks: Iterable[Task],
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> list[HistoryDay]:
    """Build newest-first day sections, each holding its task groups."""
    today = (now or datetime.now()).date()
    by_day: dict[date, list[Task]] = {}
    for task in sorted(tasks, key=lambda task: task.start_time, reverse=True):
        by_day.setdefault(task.start_time.date(), []).append(task)

    sections = [
        HistoryDay(
            label=relative_day_label(day, today),
            day=day,
            groups=group_by_name_and_tags(day_tasks),
        )
        for day, day_tasks in by_day.items()
    ]
    if limit is not None:
        sections = sections[:limit]
    return sections


def choose_granularity(date_range: DateRange) -> Granularity:
    days = date_range.days
    if days <= 31:
        return Granularity.DAY
    if days <= 62:
        return Granularity.WEEK
    if days <= 731:
        return Granularity.MONTH
    return Granularity.YEAR


def period_start(
    moment: datetime, granularity: Granularity, first_weekday: int = 0
) -> datetime:
    if granularity is Granularity.DAY:
        return start_of_day(moment)
    if granularity is Granularity.WEEK:
        return start_of_week(moment, first_weekday)
    if granularity is Granularity.MONTH:
        return start_of_month(moment)
    return start_of_day(moment).replace(month=1, day=1)


def _week_number(start: datetime, first_weekday: int) -> int:
    if first_weekday == 0:
        return start.isocalendar()[1]
    # Week 1 is the week holding January 1st.
    first_week = start_of_week(start.replace(month=1, day=1), first_weekday)
    if start < first_week:
        first_week = start_of_week(
            start.replace(year=start.year - 1, month=1, day=1), first_weekday
        )
    return (start - first_week).days // 7 + 1


def bucket_label(
    start: datetime,
    granularity: Granularity,
    *,
    first_weekday: int = 0,
    multiple_years: bool = False,
) -> str:
    if granularity is Granularity.DAY:
        return start.strftime("%m/%d")
    if granularity is Granularity.WEEK:
        return f"Wk {_week_number(start, first_weekday)}"
    if granularity is Granularity.MONTH:
        return start.strftime("%b '%y") if multiple_years else start.strftime("%b")
    return str(start.year)


def group_by_calendar_bucket(
    tasks: Iterable[Task],
    granularity: Granularity,
    *,
    first_weekday: int = 0,
    newest_first: bool = False,
) -> list[TimeGroupedBucket]:
    """Bucket tasks by the calendar period their start time falls in."""
    members: dict[datetime, list[Task]] = {}
    for task in tasks:
        start = period_start(task.start_time, granularity, first_weekday)
        members.setdefault(start, []).append(task)
    if not members:
        return []

    multiple_years = len({start.year for start in members}) > 1
    buckets = [
        TimeGroupedBucket(
            label=bucket_label(
                start,
                granularity,
                first_weekday=first_weekday,
                multiple_years=multiple_years,
            ),
            period_start=start,
            tasks=bucket_tasks,
        )
        for start, bucket_tasks in members.items()
    ]
    buckets.sort(key=lambda bucket: bucket.period_start, reverse=newest_first)
    return buckets


def _rate_key(rate: float) -> str:
    return f"{rate:g}"


def attribute_value(task: Task, attribute: TaskAttribute) -> str:
    if attribute is TaskAttribute.TITLE:
        return task.name
    if attribute is TaskAttribute.PROJECT:
        return task.project.lower()
    if attribute is TaskAttribute.TAGS:
        return task.tags
    return _rate_key(task.rate)


def attribute_values(tasks: Iterable[Task], attribute: TaskAttribute) -> list[str]:
    """Distinct non-empty values of ``attribute``, sorted case-insensitively."""
    values = {attribute_value(task, attribute) for task in tasks}
    values.discard("")
    return sorted(values, key=str.casefold)


def filter_by_attribute(
    tasks: Iterable[Task], attribute: TaskAttribute, value: str
) -> list[Task]:
    if attribute is TaskAttribute.PROJECT:
        value = value.lower()
    elif attribute is TaskAttribute.RATE:
        try:
            value = _rate_key(float(value))
        except ValueError:
            return []
    return [task for task in tasks if attribute_value(task, attribute) == value]


def filter_tasks(
    tasks: Iterable[Task],
    filter_by: FilterBy,
    text: str,
    exact: bool = False,
) -> list[Task]:
    """Case-insensitive report filter on task name or tag string."""
    needle = text.strip().lower()
    if filter_by is FilterBy.NONE or not needle:
        return list(tasks)

    def matches(haystack: str) -> bool:
        haystack = haystack.lower()
        return haystack == needle if exact else needle in haystack

    if filter_by is FilterBy.TASK:
        return [task for task in tasks if matches(task.name)]
    return [task for task in tasks if matches(task.tags)]


@dataclass(slots=True)
class ReportEntry:
    """A report heading with its time broken down by a secondary key."""

    heading: str
    total_seconds: int = 0
    breakdown: dict[str, int] = field(default_factory=dict)

    def add(self, key: str, seconds: int) -> None:
        self.total_seconds += seconds
        self.breakdown[key] = self.breakdown.get(key, 0) + seconds


def _report(tasks: Sequence[Task], by_task: bool) -> list[ReportEntry]:
    entries: dict[str, ReportEntry] = {}
    for task in tasks:
        tags = task.tags or NO_TAGS_LABEL
        heading, key = (task.name, tags) if by_task else (tags, task.name)
        entry = entries.get(heading)
        if entry is None:
            entry = entries[heading] = ReportEntry(heading=heading)
        entry.add(key, task.duration_seconds)
    return list(entries.values())


def report_by_task(tasks: Sequence[Task]) -> list[ReportEntry]:
    return _report(tasks, by_task=True)


def report_by_tag(tasks: Sequence[Task]) -> list[ReportEntry]:
    return _report(tasks, by_task=False)
