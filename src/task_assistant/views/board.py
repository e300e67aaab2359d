"""User-initiated task operations with optimistic view updates."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from task_assistant.errors import NotFoundError, TaskError, UnknownError
from task_assistant.services.schemas import TaskOut, iso_timestamp
from task_assistant.storage.models import MAX_LIST_LIMIT, Priority
from task_assistant.views.reconciler import ViewReconciler
from task_assistant.views.state import (
    CreateConfirmed,
    CreateFailed,
    DetailClosed,
    DetailOpened,
    NoticesCleared,
    OperationFailed,
    OptimisticCreate,
    OptimisticToggle,
    TaskRemoved,
    TaskUpserted,
    ToggleConfirmed,
    ToggleFailed,
    ViewLoaded,
)

logger = logging.getLogger(__name__)


class TaskGateway(Protocol):
    def list_tasks(self, **filters: Any) -> list[TaskOut]:
        ...

    def create_task(self, payload: dict[str, Any]) -> TaskOut:
        ...

    def update_task(self, task_id: str, changes: dict[str, Any]) -> TaskOut:
        ...

    def delete_task(self, task_id: str) -> None:
        ...


class TaskBoard:
    def __init__(
        self,
        reconciler: ViewReconciler,
        gateway: TaskGateway,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.reconciler = reconciler
        self.gateway = gateway
        self.clock = clock or (lambda: datetime.now(UTC))

    def load(self) -> None:
        try:
            tasks = self.gateway.list_tasks(limit=MAX_LIST_LIMIT)
        except Exception as raw:  # noqa: BLE001
            exc = _classify(raw, "load")
            self.reconciler.dispatch(OperationFailed(message=exc.message))
            return
        self.reconciler.dispatch(ViewLoaded(tasks=tuple(tasks)))

    def create(
        self,
        title: str,
        *,
        description: str | None = None,
        due_date: datetime | None = None,
        priority: Priority | None = None,
    ) -> TaskOut | None:
        temp_id = f"temp-{uuid.uuid4()}"
        stamp = iso_timestamp(self.clock())
        placeholder = TaskOut(
            id=temp_id,
            title=title.strip(),
            description=description,
            due_date=iso_timestamp(due_date) if due_date else None,
            done=False,
            priority=priority or Priority.NONE,
            owner_id="",
            created_at=stamp,
            updated_at=stamp,
        )
        self.reconciler.dispatch(OptimisticCreate(temp_id=temp_id, task=placeholder))

        payload: dict[str, Any] = {"title": title}
        if description is not None:
            payload["description"] = description
        if placeholder.due_date is not None:
            payload["dueDate"] = placeholder.due_date
        if priority is not None:
            payload["priority"] = Priority(priority).value
        try:
            task = self.gateway.create_task(payload)
        except Exception as raw:  # noqa: BLE001
            exc = _classify(raw, "create")
            logger.info("board event=create_failed temp_id=%s kind=%s", temp_id, exc.kind)
            self.reconciler.dispatch(CreateFailed(temp_id=temp_id, message=exc.message))
            return None
        self.reconciler.dispatch(CreateConfirmed(temp_id=temp_id, task=task))
        return task

    def toggle(self, task_id: str) -> TaskOut | None:
        current = self.reconciler.state.find(task_id)
        if current is None:
            self.reconciler.dispatch(OperationFailed(message=NotFoundError().message, task_id=task_id))
            return None
        target_done = not current.task.done
        self.reconciler.dispatch(OptimisticToggle(task_id=task_id))
        try:
            task = self.gateway.update_task(task_id, {"done": target_done})
        except Exception as raw:  # noqa: BLE001
            exc = _classify(raw, "toggle")
            logger.info("board event=toggle_failed task_id=%s kind=%s", task_id, exc.kind)
            self.reconciler.dispatch(ToggleFailed(task_id=task_id, message=exc.message))
            return None
        self.reconciler.dispatch(ToggleConfirmed(task=task))
        return task

    def update(self, task_id: str, changes: dict[str, Any]) -> TaskOut | None:
        try:
            task = self.gateway.update_task(task_id, changes)
        except Exception as raw:  # noqa: BLE001
            exc = _classify(raw, "update")
            self.reconciler.dispatch(OperationFailed(message=exc.message, task_id=task_id))
            return None
        self.reconciler.dispatch(TaskUpserted(task=task))
        return task

    def delete(self, task_id: str) -> bool:
        try:
            self.gateway.delete_task(task_id)
        except NotFoundError:
            # Already gone on the server.
            self.reconciler.dispatch(TaskRemoved(task_id=task_id))
            return False
        except Exception as raw:  # noqa: BLE001
            exc = _classify(raw, "delete")
            self.reconciler.dispatch(OperationFailed(message=exc.message, task_id=task_id))
            return False
        self.reconciler.dispatch(TaskRemoved(task_id=task_id))
        return True

    def open_detail(self, view: str, task_id: str) -> None:
        self.reconciler.dispatch(DetailOpened(view=view, task_id=task_id))

    def close_detail(self, view: str) -> None:
        self.reconciler.dispatch(DetailClosed(view=view))

    def dismiss_notices(self) -> None:
        self.reconciler.dispatch(NoticesCleared())


def _classify(exc: Exception, operation: str) -> TaskError:
    if isinstance(exc, TaskError):
        return exc
    logger.exception("board event=gateway_failed operation=%s", operation)
    return UnknownError()
