"""Task service: validation, ownership resolution, and error classification.

Every public method resolves the caller to an owner id before touching the
repository and returns `TaskOut` models. Failures always surface as one of
the `task_assistant.errors` classes; storage and schema-library exceptions
are classified here and never escape raw.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from task_assistant.errors import (
    NotFoundError,
    TaskError,
    UnknownError,
    ValidationError,
    issues_from_pydantic,
)
from task_assistant.services.identity import IdentityProvider, IdentityResolver
from task_assistant.services.schemas import CreateTaskInput, ListFilters, TaskOut, TaskPatch
from task_assistant.storage.base import TaskStorage
from task_assistant.storage.models import (
    DEFAULT_LIST_LIMIT,
    NewTask,
    Priority,
    TaskChanges,
    TaskQuery,
)

TModel = TypeVar("TModel", bound=BaseModel)
logger = logging.getLogger(__name__)


class TaskService:
    def __init__(
        self,
        storage: TaskStorage,
        identity: IdentityProvider,
        *,
        auto_provision_users: bool = False,
    ) -> None:
        self.storage = storage
        self.identity = identity
        self.resolver = IdentityResolver(storage, auto_provision=auto_provision_users)

    def create_task(self, payload: Mapping[str, Any] | CreateTaskInput) -> TaskOut:
        data = _validate(CreateTaskInput, payload)
        owner_id = self._owner_id()
        fields = NewTask(
            title=data.title,
            description=data.description,
            due_date=data.due_date,
            done=data.done,
            priority=data.priority or Priority.NONE,
        )
        with _storage_call("create"):
            record = self.storage.create(owner_id, fields)
        logger.info("task_service event=created task_id=%s owner_id=%s", record.id, owner_id)
        return TaskOut.from_record(record)

    def get_task(self, task_id: str) -> TaskOut:
        owner_id = self._owner_id()
        with _storage_call("get"):
            record = self.storage.get(owner_id, task_id)
        if record is None:
            raise NotFoundError()
        return TaskOut.from_record(record)

    def update_task(self, task_id: str, payload: Mapping[str, Any] | TaskPatch) -> TaskOut:
        patch = _validate(TaskPatch, payload)
        changes = changes_from_patch(patch)
        owner_id = self._owner_id()
        with _storage_call("update"):
            if changes.is_empty():
                record = self.storage.get(owner_id, task_id)
            else:
                record = self.storage.update(owner_id, task_id, changes)
        if record is None:
            raise NotFoundError()
        logger.info(
            "task_service event=updated task_id=%s fields=%s",
            task_id,
            sorted(changes.present()),
        )
        return TaskOut.from_record(record)

    def toggle_done(self, task_id: str, done: bool) -> TaskOut:
        if not isinstance(done, bool):
            raise ValidationError(details=[{"field": "done", "message": "Must be a boolean"}])
        owner_id = self._owner_id()
        with _storage_call("toggle"):
            record = self.storage.update(owner_id, task_id, TaskChanges(done=done))
        if record is None:
            raise NotFoundError()
        return TaskOut.from_record(record)

    def delete_task(self, task_id: str) -> None:
        owner_id = self._owner_id()
        with _storage_call("delete"):
            deleted = self.storage.delete(owner_id, task_id)
        if not deleted:
            raise NotFoundError()
        logger.info("task_service event=deleted task_id=%s owner_id=%s", task_id, owner_id)

    def list_tasks(self, filters: Mapping[str, Any] | ListFilters | None = None) -> list[TaskOut]:
        data = _validate(ListFilters, filters or {})
        query = TaskQuery(
            done=data.done,
            priority=data.priority,
            q=data.q,
            limit=data.limit if data.limit is not None else DEFAULT_LIST_LIMIT,
        )
        owner_id = self._owner_id()
        with _storage_call("list"):
            records = self.storage.list(owner_id, query)
        return [TaskOut.from_record(record) for record in records]

    def _owner_id(self) -> str:
        return self.resolver.resolve(self.identity())


def changes_from_patch(patch: TaskPatch) -> TaskChanges:
    """Map a validated patch onto TaskChanges, keeping omitted keys UNSET."""
    sent = patch.model_fields_set
    issues: list[dict[str, str]] = []
    values: dict[str, Any] = {}

    if "title" in sent:
        if patch.title is None:
            issues.append({"field": "title", "message": "Title is required"})
        else:
            values["title"] = patch.title
    if "done" in sent:
        if patch.done is None:
            issues.append({"field": "done", "message": "Must be a boolean"})
        else:
            values["done"] = patch.done
    if "description" in sent:
        values["description"] = patch.description
    if "due_date" in sent:
        values["due_date"] = patch.due_date
    if "priority" in sent:
        values["priority"] = patch.priority or Priority.NONE

    if issues:
        raise ValidationError(details=issues)
    return TaskChanges(**values)


def _validate(
    model: type[TModel],
    payload: Mapping[str, Any] | BaseModel,
) -> TModel:
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    if not isinstance(payload, Mapping):
        raise ValidationError("Invalid input")
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError(details=issues_from_pydantic(exc.errors())) from exc


@contextmanager
def _storage_call(operation: str) -> Iterator[None]:
    try:
        yield
    except TaskError:
        raise
    except PydanticValidationError as exc:
        raise ValidationError(details=issues_from_pydantic(exc.errors())) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("task_service event=storage_error operation=%s", operation)
        raise UnknownError("Database operation failed") from exc
