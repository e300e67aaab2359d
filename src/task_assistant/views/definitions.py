"""Named task views and the date grouping used by list screens."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from task_assistant.services.schemas import TaskOut
from task_assistant.storage.models import Priority

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ViewSpec:
    """A projection of the task set: which tasks belong, and in what order."""

    name: str
    predicate: Callable[[TaskOut], bool]
    sort_key: Callable[[TaskOut], Any]

    def matches(self, task: TaskOut) -> bool:
        return self.predicate(task)

    def order(self, tasks: Iterable[TaskOut]) -> list[TaskOut]:
        return sorted((task for task in tasks if self.matches(task)), key=self.sort_key)


class LocalCalendar:
    """Resolves timestamps to calendar days in the display timezone."""

    def __init__(self, display_timezone: str = "Asia/Kolkata", clock: Clock | None = None) -> None:
        self.tz = ZoneInfo(display_timezone)
        self.clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self.clock().astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def local_date(self, value: str | None) -> date | None:
        parsed = parse_timestamp(value)
        return parsed.astimezone(self.tz).date() if parsed else None


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def service_order(task: TaskOut) -> tuple[int, float, str]:
    created = parse_timestamp(task.created_at)
    return (
        Priority(task.priority).rank,
        -(created.timestamp() if created else 0.0),
        task.id,
    )


def due_date_order(task: TaskOut) -> tuple[bool, float, str]:
    due = parse_timestamp(task.due_date)
    return (due is None, due.timestamp() if due else 0.0, task.id)


def default_views(
    *,
    display_timezone: str = "Asia/Kolkata",
    clock: Clock | None = None,
) -> dict[str, ViewSpec]:
    calendar = LocalCalendar(display_timezone, clock)

    def due_today(task: TaskOut) -> bool:
        return calendar.local_date(task.due_date) == calendar.today()

    def due_from_today(task: TaskOut) -> bool:
        due = calendar.local_date(task.due_date)
        return due is not None and due >= calendar.today()

    specs = [
        ViewSpec(name="all", predicate=lambda task: True, sort_key=service_order),
        ViewSpec(name="today", predicate=due_today, sort_key=service_order),
        ViewSpec(name="upcoming", predicate=due_from_today, sort_key=due_date_order),
    ]
    return {spec.name: spec for spec in specs}


@dataclass(frozen=True)
class TaskGroup:
    label: str
    sort_order: int
    tasks: list[TaskOut] = field(default_factory=list)


NO_DUE_DATE_ORDER = 999


def group_by_due_date(
    tasks: Sequence[TaskOut],
    *,
    calendar: LocalCalendar,
) -> list[TaskGroup]:
    """Bucket tasks by local due day: Yesterday / Today / Tomorrow / 'Mon d' / No Due Date."""
    today = calendar.today()
    buckets: dict[date | None, TaskGroup] = {}
    for task in tasks:
        day = calendar.local_date(task.due_date)
        group = buckets.get(day)
        if group is None:
            group = _group_for(day, today)
            buckets[day] = group
        group.tasks.append(task)
    return sorted(buckets.values(), key=lambda group: group.sort_order)


def _group_for(day: date | None, today: date) -> TaskGroup:
    if day is None:
        return TaskGroup(label="No Due Date", sort_order=NO_DUE_DATE_ORDER)
    offset = (day - today).days
    labels = {-1: "Yesterday", 0: "Today", 1: "Tomorrow"}
    return TaskGroup(label=labels.get(offset, f"{day:%b} {day.day}"), sort_order=offset)


@dataclass(frozen=True)
class ViewSummary:
    completed: int
    pending: int

    @property
    def total(self) -> int:
        return self.completed + self.pending

    @classmethod
    def of(cls, tasks: Iterable[TaskOut]) -> ViewSummary:
        completed = pending = 0
        for task in tasks:
            if task.done:
                completed += 1
            else:
                pending += 1
        return cls(completed=completed, pending=pending)
