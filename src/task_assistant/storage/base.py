"""Storage interfaces for owner-scoped tasks and the user directory."""

from __future__ import annotations

from typing import Protocol

from task_assistant.storage.models import (
    NewTask,
    TaskChanges,
    TaskQuery,
    TaskRecord,
    UserRecord,
)


class TaskRepository(Protocol):
    """Every method takes the owner id; a foreign id behaves as a missing one."""

    def migrate(self) -> None: ...

    def create(self, owner_id: str, fields: NewTask) -> TaskRecord: ...

    def get(self, owner_id: str, task_id: str) -> TaskRecord | None: ...

    def update(
        self,
        owner_id: str,
        task_id: str,
        changes: TaskChanges,
    ) -> TaskRecord | None: ...

    def delete(self, owner_id: str, task_id: str) -> bool: ...

    def list(self, owner_id: str, query: TaskQuery) -> list[TaskRecord]: ...


class UserDirectory(Protocol):
    def resolve_owner(self, external_id: str) -> str | None: ...

    def upsert_user(
        self,
        external_id: str,
        *,
        email: str | None = None,
        name: str | None = None,
    ) -> UserRecord: ...


class TaskStorage(TaskRepository, UserDirectory, Protocol):
    """A backend that serves both tasks and users."""
