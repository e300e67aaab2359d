from __future__ import annotations

import pytest

from task_assistant.agent.events import TranscriptEvent
from task_assistant.errors import UnknownError, ValidationError
from task_assistant.services.schemas import TaskOut
from task_assistant.storage.models import Priority
from task_assistant.views import (
    EntryStatus,
    LocalCalendar,
    TaskBoard,
    ViewReconciler,
    ViewState,
    ViewSummary,
    default_views,
    group_by_due_date,
    reduce,
)
from task_assistant.views.state import (
    CreateConfirmed,
    CreateFailed,
    DetailOpened,
    OptimisticCreate,
    OptimisticToggle,
    TaskRemoved,
    TaskUpserted,
    ToggleFailed,
    ViewLoaded,
)
from tests.fakes import FROZEN_NOW, FakeTaskGateway

# FROZEN_NOW is midday on 19 October in Asia/Kolkata; 12:30Z is 18:00 local.
YESTERDAY = "2025-10-18T12:30:00.000Z"
TODAY = "2025-10-19T12:30:00.000Z"
TOMORROW = "2025-10-20T12:30:00.000Z"
LATER = "2025-10-22T12:30:00.000Z"


def _task(task_id: str, *, due: str | None = None, done: bool = False, **extra) -> TaskOut:
    fields = {
        "id": task_id,
        "title": extra.pop("title", task_id),
        "due_date": due,
        "done": done,
        "priority": extra.pop("priority", Priority.NONE),
        "owner_id": "owner-1",
        "created_at": extra.pop("created_at", "2025-10-18T00:00:00.000Z"),
        "updated_at": "2025-10-18T00:00:00.000Z",
    }
    fields.update(extra)
    return TaskOut(**fields)


@pytest.fixture
def specs():
    return default_views(clock=lambda: FROZEN_NOW)


@pytest.fixture
def state(specs) -> ViewState:
    return ViewState.empty(specs)


def test_views_filter_by_local_due_day(state: ViewState) -> None:
    loaded = reduce(
        state,
        ViewLoaded(
            tasks=(
                _task("past", due=YESTERDAY),
                _task("today", due=TODAY),
                _task("later", due=LATER),
                _task("tomorrow", due=TOMORROW),
                _task("undated"),
            )
        ),
    )

    assert set(loaded.ids("all")) == {"past", "today", "later", "tomorrow", "undated"}
    assert loaded.ids("today") == ["today"]
    assert loaded.ids("upcoming") == ["today", "tomorrow", "later"]


def test_all_view_orders_by_priority_then_newest(state: ViewState) -> None:
    loaded = reduce(
        state,
        ViewLoaded(
            tasks=(
                _task("low-old", priority=Priority.LOW, created_at="2025-10-01T00:00:00.000Z"),
                _task("urgent", priority=Priority.URGENT),
                _task("low-new", priority=Priority.LOW, created_at="2025-10-02T00:00:00.000Z"),
            )
        ),
    )

    assert loaded.ids("all") == ["urgent", "low-new", "low-old"]


def test_optimistic_create_lands_only_in_matching_views(state: ViewState) -> None:
    draft = _task("ignored", due=TOMORROW, title="Buy milk")

    pending = reduce(state, OptimisticCreate(temp_id="temp-1", task=draft))

    assert pending.ids("upcoming") == ["temp-1"]
    assert pending.ids("all") == ["temp-1"]
    assert pending.ids("today") == []
    assert pending.entries("upcoming")[0].status is EntryStatus.PENDING


def test_failed_create_removes_placeholder_and_records_notice(state: ViewState) -> None:
    pending = reduce(state, OptimisticCreate(temp_id="temp-1", task=_task("x", due=TOMORROW)))

    failed = reduce(pending, CreateFailed(temp_id="temp-1", message="Validation failed"))

    assert failed.ids("upcoming") == []
    assert failed.ids("all") == []
    assert [notice.message for notice in failed.notices] == ["Validation failed"]


def test_confirmed_create_replaces_placeholder_once(state: ViewState) -> None:
    pending = reduce(state, OptimisticCreate(temp_id="temp-1", task=_task("x", due=TODAY)))
    real = _task("task-42", due=TODAY)
    # The list refresh can race ahead of the confirmation.
    raced = reduce(pending, TaskUpserted(task=real))

    confirmed = reduce(raced, CreateConfirmed(temp_id="temp-1", task=real))

    assert confirmed.ids("today") == ["task-42"]
    assert confirmed.ids("all") == ["task-42"]
    assert confirmed.entries("today")[0].status is EntryStatus.CONFIRMED


def test_failed_toggle_rolls_back_to_previous_value(state: ViewState) -> None:
    loaded = reduce(state, ViewLoaded(tasks=(_task("t1", due=TODAY),)))

    pending = reduce(loaded, OptimisticToggle(task_id="t1"))
    assert pending.find("t1").task.done is True
    assert pending.find("t1").status is EntryStatus.PENDING

    rolled_back = reduce(pending, ToggleFailed(task_id="t1", message="Database operation failed"))
    snapshot = rolled_back.find("t1")
    assert snapshot.task.done is False
    assert snapshot.status is EntryStatus.ROLLED_BACK
    assert rolled_back.notices[-1].task_id == "t1"


def test_update_moving_task_out_of_view_closes_its_detail(state: ViewState) -> None:
    loaded = reduce(state, ViewLoaded(tasks=(_task("t1", due=TODAY),)))
    opened = reduce(loaded, DetailOpened(view="today", task_id="t1"))
    assert opened.detail("today").id == "t1"

    moved = reduce(opened, TaskUpserted(task=_task("t1", due=TOMORROW)))

    assert moved.ids("today") == []
    assert moved.detail("today") is None
    assert moved.ids("upcoming") == ["t1"]


def test_removed_task_disappears_everywhere_and_closes_detail(state: ViewState) -> None:
    loaded = reduce(state, ViewLoaded(tasks=(_task("t1", due=TODAY), _task("t2"))))
    opened = reduce(loaded, DetailOpened(view="all", task_id="t1"))

    removed = reduce(opened, TaskRemoved(task_id="t1"))

    assert removed.find("t1") is None
    assert removed.ids("all") == ["t2"]
    assert removed.details["all"] is None


def test_detail_requires_a_known_view_and_a_present_task(state: ViewState) -> None:
    loaded = reduce(state, ViewLoaded(tasks=(_task("t1"),)))

    assert reduce(loaded, DetailOpened(view="today", task_id="t1")).details["today"] is None
    with pytest.raises(KeyError):
        reduce(loaded, DetailOpened(view="someday", task_id="t1"))


def test_repeated_upserts_keep_one_entry_per_task(state: ViewState) -> None:
    current = state
    for title in ("first", "second", "third"):
        current = reduce(current, TaskUpserted(task=_task("t1", due=TODAY, title=title)))

    assert current.ids("all") == ["t1"]
    assert current.find("t1").task.title == "third"


def test_reduce_does_not_mutate_input(state: ViewState) -> None:
    loaded = reduce(state, ViewLoaded(tasks=(_task("t1"),)))

    reduce(loaded, TaskRemoved(task_id="t1"))

    assert loaded.ids("all") == ["t1"]
    assert loaded.version == 1


def test_group_by_due_date_labels_relative_days() -> None:
    calendar = LocalCalendar("Asia/Kolkata", lambda: FROZEN_NOW)
    tasks = [
        _task("undated"),
        _task("later", due=LATER),
        _task("today", due=TODAY),
        _task("past", due=YESTERDAY),
        _task("tomorrow", due=TOMORROW),
    ]

    groups = group_by_due_date(tasks, calendar=calendar)

    assert [group.label for group in groups] == [
        "Yesterday",
        "Today",
        "Tomorrow",
        "Oct 22",
        "No Due Date",
    ]
    assert [task.id for task in groups[-1].tasks] == ["undated"]


def test_view_summary_counts_completion() -> None:
    summary = ViewSummary.of([_task("a", done=True), _task("b"), _task("c")])

    assert (summary.completed, summary.pending, summary.total) == (1, 2, 3)


def test_agent_tool_results_fold_into_views(specs) -> None:
    reconciler = ViewReconciler(specs)
    created = TranscriptEvent(
        type="tool_result",
        call_id="c1",
        tool="createTask",
        result={"success": True, "message": "ok", "data": {"task": _task("t1", due=TODAY).to_wire()}},
    )
    failed = TranscriptEvent(
        type="tool_result",
        call_id="c2",
        tool="createTask",
        result={"success": False, "message": "nope", "errorKind": "ValidationError"},
    )
    deleted = TranscriptEvent(
        type="tool_result",
        call_id="c3",
        tool="deleteTask",
        result={"success": True, "message": "ok", "data": {"id": "t1"}},
    )

    reconciler.apply_transcript_event(created)
    assert reconciler.state.ids("today") == ["t1"]
    assert reconciler.apply_transcript_event(failed) == []
    reconciler.apply_transcript_event(deleted)
    assert reconciler.state.find("t1") is None


def test_board_create_shows_placeholder_then_confirmed_task(specs, service) -> None:
    reconciler = ViewReconciler(specs)
    board = TaskBoard(reconciler, FakeTaskGateway(service), clock=lambda: FROZEN_NOW)
    seen: list[ViewState] = []
    reconciler.subscribe(seen.append)

    task = board.create("Buy milk", due_date=FROZEN_NOW.replace(day=20, hour=12, minute=30))

    assert task is not None
    first = seen[0]
    assert first.entries("upcoming")[0].status is EntryStatus.PENDING
    assert first.entries("upcoming")[0].id.startswith("temp-")
    assert first.ids("today") == []
    assert reconciler.state.ids("upcoming") == [task.id]
    assert reconciler.state.entries("upcoming")[0].status is EntryStatus.CONFIRMED


def test_board_create_failure_rolls_back(specs, service) -> None:
    reconciler = ViewReconciler(specs)
    gateway = FakeTaskGateway(service)
    gateway.fail_with = ValidationError("Validation failed")
    board = TaskBoard(reconciler, gateway, clock=lambda: FROZEN_NOW)

    assert board.create("Buy milk") is None
    assert reconciler.state.ids("all") == []
    assert reconciler.state.notices[-1].message == "Validation failed"
    assert service.list_tasks() == []


def test_board_toggle_failure_restores_done_flag(specs, service) -> None:
    service.create_task({"title": "Pay rent"})
    reconciler = ViewReconciler(specs)
    gateway = FakeTaskGateway(service)
    board = TaskBoard(reconciler, gateway)
    board.load()
    task_id = reconciler.state.ids("all")[0]

    gateway.fail_with = UnknownError("Database operation failed")
    assert board.toggle(task_id) is None
    snapshot = reconciler.state.find(task_id)
    assert snapshot.task.done is False
    assert snapshot.status is EntryStatus.ROLLED_BACK

    toggled = board.toggle(task_id)
    assert toggled is not None and toggled.done is True
    assert reconciler.state.find(task_id).status is EntryStatus.CONFIRMED


def test_board_delete_of_missing_task_still_clears_it(specs, service) -> None:
    reconciler = ViewReconciler(specs)
    reconciler.dispatch(TaskUpserted(task=_task("ghost")))
    board = TaskBoard(reconciler, FakeTaskGateway(service))

    assert board.delete("ghost") is False
    assert reconciler.state.find("ghost") is None


def test_unsubscribed_callbacks_stop_receiving_states(specs) -> None:
    reconciler = ViewReconciler(specs)
    versions: list[int] = []
    unsubscribe = reconciler.subscribe(lambda current: versions.append(current.version))

    reconciler.dispatch(TaskUpserted(task=_task("t1")))
    unsubscribe()
    reconciler.dispatch(TaskRemoved(task_id="t1"))

    assert versions == [1]


class _BrokenGateway(FakeTaskGateway):
    def update_task(self, task_id: str, changes: dict) -> TaskOut:
        raise RuntimeError("socket closed")


def test_board_rolls_back_on_unclassified_gateway_failure(specs, service) -> None:
    service.create_task({"title": "Pay rent"})
    reconciler = ViewReconciler(specs)
    board = TaskBoard(reconciler, _BrokenGateway(service))
    board.load()
    task_id = reconciler.state.ids("all")[0]

    assert board.toggle(task_id) is None

    snapshot = reconciler.state.find(task_id)
    assert snapshot.task.done is False
    assert snapshot.status is EntryStatus.ROLLED_BACK
    assert reconciler.state.notices[-1].message == "Internal server error"

    board.dismiss_notices()
    assert reconciler.state.notices == ()
