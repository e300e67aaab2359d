"""In-memory storage backend for tests and local console sessions."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from task_assistant.storage.models import (
    NewTask,
    TaskChanges,
    TaskQuery,
    TaskRecord,
    UserRecord,
    matches_query,
    sort_key,
)


class InMemoryTaskStorage:
    """Dict-backed implementation with one lock per task id."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._users: dict[str, UserRecord] = {}
        self._row_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._last_stamp: datetime | None = None

    def migrate(self) -> None:
        return None

    def create(self, owner_id: str, fields: NewTask) -> TaskRecord:
        with self._registry_lock:
            now = self._next_stamp()
            record = TaskRecord(
                id=str(uuid4()),
                owner_id=owner_id,
                title=fields.title,
                description=fields.description,
                due_date=fields.due_date,
                done=fields.done,
                priority=fields.priority,
                created_at=now,
                updated_at=now,
            )
            self._tasks[record.id] = record
            self._row_locks[record.id] = threading.Lock()
        return record.model_copy(deep=True)

    def get(self, owner_id: str, task_id: str) -> TaskRecord | None:
        with self._registry_lock:
            record = self._tasks.get(task_id)
        if record is None or record.owner_id != owner_id:
            return None
        return record.model_copy(deep=True)

    def update(
        self,
        owner_id: str,
        task_id: str,
        changes: TaskChanges,
    ) -> TaskRecord | None:
        row_lock = self._row_lock(task_id)
        if row_lock is None:
            return None
        with row_lock:
            with self._registry_lock:
                current = self._tasks.get(task_id)
                if current is None or current.owner_id != owner_id:
                    return None
                stamp = self._next_stamp()
            update = changes.present()
            update["updated_at"] = max(stamp, current.created_at)
            updated = current.model_copy(update=update, deep=True)
            with self._registry_lock:
                if task_id not in self._tasks:
                    return None
                self._tasks[task_id] = updated
        return updated.model_copy(deep=True)

    def delete(self, owner_id: str, task_id: str) -> bool:
        row_lock = self._row_lock(task_id)
        if row_lock is None:
            return False
        with row_lock, self._registry_lock:
            current = self._tasks.get(task_id)
            if current is None or current.owner_id != owner_id:
                return False
            del self._tasks[task_id]
            self._row_locks.pop(task_id, None)
        return True

    def list(self, owner_id: str, query: TaskQuery) -> list[TaskRecord]:
        with self._registry_lock:
            owned = [
                record
                for record in self._tasks.values()
                if record.owner_id == owner_id and matches_query(record, query)
            ]
        owned.sort(key=sort_key)
        return [record.model_copy(deep=True) for record in owned[: query.limit]]

    def resolve_owner(self, external_id: str) -> str | None:
        with self._registry_lock:
            user = self._users.get(external_id)
        return user.id if user else None

    def upsert_user(
        self,
        external_id: str,
        *,
        email: str | None = None,
        name: str | None = None,
    ) -> UserRecord:
        with self._registry_lock:
            existing = self._users.get(external_id)
            if existing is not None:
                updated = existing.model_copy(
                    update={
                        "email": email if email is not None else existing.email,
                        "name": name if name is not None else existing.name,
                    }
                )
            else:
                updated = UserRecord(
                    id=str(uuid4()),
                    external_id=external_id,
                    email=email,
                    name=name,
                    created_at=self._clock(),
                )
            self._users[external_id] = updated
        return updated

    def _row_lock(self, task_id: str) -> threading.Lock | None:
        with self._registry_lock:
            return self._row_locks.get(task_id)

    def _next_stamp(self) -> datetime:
        # Strictly increasing so newest-first ordering is stable for fast inserts.
        now = self._clock()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now
