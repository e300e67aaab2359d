"""Owns the current view state and folds events into it atomically."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from task_assistant.agent.events import TranscriptEvent
from task_assistant.services.schemas import TaskOut
from task_assistant.tools.registry import ToolName
from task_assistant.views.definitions import ViewSpec
from task_assistant.views.state import (
    TaskRemoved,
    TaskUpserted,
    ViewEvent,
    ViewState,
    reduce,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[ViewState], None]


class ViewReconciler:
    """Single owner of `ViewState`.

    Each event is reduced into a new state which then replaces the old one
    in one assignment under the lock, so a reader sees either the state
    before an event or the state after it. Subscribers are called after the
    swap, outside the lock, with the state that event produced.
    """

    def __init__(self, specs: Mapping[str, ViewSpec]) -> None:
        self._state = ViewState.empty(specs)
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []

    @property
    def state(self) -> ViewState:
        return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def dispatch(self, event: ViewEvent) -> ViewState:
        with self._lock:
            next_state = reduce(self._state, event)
            self._state = next_state
            subscribers = list(self._subscribers)
        logger.debug("views event=%s version=%s", type(event).__name__, next_state.version)
        for callback in subscribers:
            callback(next_state)
        return next_state

    def apply_transcript_event(self, event: TranscriptEvent) -> list[ViewEvent]:
        """Fold a successful task tool result from the agent into the views."""
        view_events = view_events_from_transcript(event)
        for view_event in view_events:
            self.dispatch(view_event)
        return view_events


def view_events_from_transcript(event: TranscriptEvent) -> list[ViewEvent]:
    if event.type != "tool_result" or not event.result or not event.result.get("success"):
        return []
    data: dict[str, Any] = event.result.get("data") or {}

    try:
        if event.tool in (ToolName.CREATE_TASK.value, ToolName.UPDATE_TASK.value):
            task = data.get("task")
            return [TaskUpserted(task=TaskOut.model_validate(task))] if task else []
        if event.tool == ToolName.LIST_TASKS.value:
            return [TaskUpserted(task=TaskOut.model_validate(task)) for task in data.get("tasks") or []]
    except PydanticValidationError:
        logger.warning("views event=ignored_tool_result tool=%s reason=malformed_task", event.tool)
        return []
    if event.tool == ToolName.DELETE_TASK.value and data.get("id"):
        return [TaskRemoved(task_id=str(data["id"]))]
    return []
