"""Client-side task views with optimistic reconciliation."""

from task_assistant.views.board import TaskBoard, TaskGateway
from task_assistant.views.client import TaskApiClient
from task_assistant.views.definitions import (
    LocalCalendar,
    TaskGroup,
    ViewSpec,
    ViewSummary,
    default_views,
    group_by_due_date,
)
from task_assistant.views.reconciler import ViewReconciler, view_events_from_transcript
from task_assistant.views.state import EntryStatus, Snapshot, ViewState, reduce

__all__ = [
    "EntryStatus",
    "LocalCalendar",
    "Snapshot",
    "TaskApiClient",
    "TaskBoard",
    "TaskGateway",
    "TaskGroup",
    "ViewReconciler",
    "ViewSpec",
    "ViewState",
    "ViewSummary",
    "default_views",
    "group_by_due_date",
    "reduce",
    "view_events_from_transcript",
]
