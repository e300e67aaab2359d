"""Immutable view state and the pure reducer that advances it."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum

from task_assistant.services.schemas import TaskOut
from task_assistant.views.definitions import ViewSpec


class EntryStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class Snapshot:
    task: TaskOut
    status: EntryStatus = EntryStatus.CONFIRMED
    temp_id: str | None = None
    # Value before an optimistic toggle, restored if the toggle fails.
    previous: TaskOut | None = None

    @property
    def id(self) -> str:
        return self.task.id


@dataclass(frozen=True)
class Notice:
    message: str
    task_id: str | None = None
    level: str = "error"


@dataclass(frozen=True)
class ViewState:
    specs: Mapping[str, ViewSpec]
    views: Mapping[str, tuple[Snapshot, ...]]
    details: Mapping[str, str | None] = field(default_factory=dict)
    notices: tuple[Notice, ...] = ()
    version: int = 0

    @classmethod
    def empty(cls, specs: Mapping[str, ViewSpec]) -> ViewState:
        return cls(
            specs=dict(specs),
            views={name: () for name in specs},
            details={name: None for name in specs},
        )

    def entries(self, view: str) -> tuple[Snapshot, ...]:
        return self.views[view]

    def tasks(self, view: str) -> list[TaskOut]:
        return [snapshot.task for snapshot in self.views[view]]

    def ids(self, view: str) -> list[str]:
        return [snapshot.id for snapshot in self.views[view]]

    def find(self, task_id: str) -> Snapshot | None:
        for entries in self.views.values():
            for snapshot in entries:
                if snapshot.id == task_id:
                    return snapshot
        return None

    def detail(self, view: str) -> Snapshot | None:
        task_id = self.details.get(view)
        if task_id is None:
            return None
        for snapshot in self.views.get(view, ()):
            if snapshot.id == task_id:
                return snapshot
        return None


# Events


@dataclass(frozen=True)
class ViewLoaded:
    tasks: tuple[TaskOut, ...]
    view: str | None = None


@dataclass(frozen=True)
class OptimisticCreate:
    temp_id: str
    task: TaskOut


@dataclass(frozen=True)
class CreateConfirmed:
    temp_id: str
    task: TaskOut


@dataclass(frozen=True)
class CreateFailed:
    temp_id: str
    message: str


@dataclass(frozen=True)
class OptimisticToggle:
    task_id: str


@dataclass(frozen=True)
class ToggleConfirmed:
    task: TaskOut


@dataclass(frozen=True)
class ToggleFailed:
    task_id: str
    message: str


@dataclass(frozen=True)
class TaskUpserted:
    task: TaskOut


@dataclass(frozen=True)
class TaskRemoved:
    task_id: str


@dataclass(frozen=True)
class DetailOpened:
    view: str
    task_id: str


@dataclass(frozen=True)
class DetailClosed:
    view: str


@dataclass(frozen=True)
class OperationFailed:
    message: str
    task_id: str | None = None


@dataclass(frozen=True)
class NoticesCleared:
    pass


ViewEvent = (
    ViewLoaded
    | OptimisticCreate
    | CreateConfirmed
    | CreateFailed
    | OptimisticToggle
    | ToggleConfirmed
    | ToggleFailed
    | TaskUpserted
    | TaskRemoved
    | DetailOpened
    | DetailClosed
    | OperationFailed
    | NoticesCleared
)


def reduce(state: ViewState, event: ViewEvent) -> ViewState:
    """Return the state after `event`. Never mutates `state`."""
    views = dict(state.views)
    details = dict(state.details)
    notices = state.notices

    if isinstance(event, ViewLoaded):
        names = [event.view] if event.view is not None else list(state.specs)
        for name in names:
            spec = state.specs[name]
            pending = [entry for entry in views[name] if entry.status is EntryStatus.PENDING]
            pending_ids = {entry.id for entry in pending}
            loaded = [
                Snapshot(task=task)
                for task in spec.order(event.tasks)
                if task.id not in pending_ids
            ]
            views[name] = _arrange(spec, [*pending, *loaded])
            if details.get(name) and details[name] not in {entry.id for entry in views[name]}:
                details[name] = None

    elif isinstance(event, OptimisticCreate):
        placeholder = event.task.model_copy(update={"id": event.temp_id})
        for name, spec in state.specs.items():
            if spec.matches(placeholder):
                entry = Snapshot(task=placeholder, status=EntryStatus.PENDING, temp_id=event.temp_id)
                views[name] = _arrange(spec, [entry, *_without(views[name], event.temp_id)])

    elif isinstance(event, CreateConfirmed):
        for name, spec in state.specs.items():
            entries = _without(_without(views[name], event.temp_id), event.task.id)
            if spec.matches(event.task):
                entries = [*entries, Snapshot(task=event.task)]
            views[name] = _arrange(spec, entries)

    elif isinstance(event, CreateFailed):
        for name, spec in state.specs.items():
            views[name] = _arrange(spec, _without(views[name], event.temp_id))
            if details.get(name) == event.temp_id:
                details[name] = None
        notices = (*notices, Notice(message=event.message, task_id=event.temp_id))

    elif isinstance(event, OptimisticToggle):
        for name in state.specs:
            # Membership is re-evaluated on confirmation, not while pending.
            views[name] = tuple(
                _toggled(entry) if entry.id == event.task_id else entry for entry in views[name]
            )

    elif isinstance(event, (ToggleConfirmed, TaskUpserted)):
        for name, spec in state.specs.items():
            present = any(entry.id == event.task.id for entry in views[name])
            entries = _without(views[name], event.task.id)
            if spec.matches(event.task):
                views[name] = _arrange(spec, [*entries, Snapshot(task=event.task)])
            else:
                views[name] = _arrange(spec, entries)
                if present and details.get(name) == event.task.id:
                    details[name] = None

    elif isinstance(event, ToggleFailed):
        for name, spec in state.specs.items():
            views[name] = _arrange(
                spec,
                [_rolled_back(entry) if entry.id == event.task_id else entry for entry in views[name]],
            )
        notices = (*notices, Notice(message=event.message, task_id=event.task_id))

    elif isinstance(event, TaskRemoved):
        for name, spec in state.specs.items():
            views[name] = _arrange(spec, _without(views[name], event.task_id))
            if details.get(name) == event.task_id:
                details[name] = None

    elif isinstance(event, DetailOpened):
        if event.view not in state.specs:
            raise KeyError(f"unknown view: {event.view}")
        if any(entry.id == event.task_id for entry in views[event.view]):
            details[event.view] = event.task_id

    elif isinstance(event, DetailClosed):
        details[event.view] = None

    elif isinstance(event, OperationFailed):
        notices = (*notices, Notice(message=event.message, task_id=event.task_id))

    elif isinstance(event, NoticesCleared):
        notices = ()

    else:
        raise TypeError(f"unsupported view event: {type(event).__name__}")

    return replace(state, views=views, details=details, notices=notices, version=state.version + 1)


def _without(entries, task_id: str) -> list[Snapshot]:
    return [entry for entry in entries if entry.id != task_id]


def _arrange(spec: ViewSpec, entries) -> tuple[Snapshot, ...]:
    """Pending creates first, newest first; everything else in view order."""
    placeholders: list[Snapshot] = []
    settled: dict[str, Snapshot] = {}
    for entry in entries:
        if entry.temp_id is not None and entry.status is EntryStatus.PENDING:
            if all(existing.id != entry.id for existing in placeholders):
                placeholders.append(entry)
        else:
            settled[entry.id] = entry
    ordered = sorted(settled.values(), key=lambda entry: spec.sort_key(entry.task))
    return (*placeholders, *ordered)


def _toggled(entry: Snapshot) -> Snapshot:
    previous = entry.previous if entry.status is EntryStatus.PENDING and entry.previous else entry.task
    flipped = entry.task.model_copy(update={"done": not entry.task.done})
    return Snapshot(task=flipped, status=EntryStatus.PENDING, temp_id=entry.temp_id, previous=previous)


def _rolled_back(entry: Snapshot) -> Snapshot:
    if entry.previous is None:
        return entry
    return Snapshot(task=entry.previous, status=EntryStatus.ROLLED_BACK)
