"""Storage models shared by the service layer and persistence backends."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Priority(str, Enum):
    URGENT = "URGENT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK: dict[Priority, int] = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
    Priority.NONE: 4,
}

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100


class TaskRecord(BaseModel):
    """Persisted task record."""

    id: str
    owner_id: str
    title: str
    description: str | None = None
    due_date: datetime | None = None
    done: bool = False
    priority: Priority = Priority.NONE
    created_at: datetime
    updated_at: datetime


class UserRecord(BaseModel):
    """Internal user row keyed by the identity provider's external id."""

    id: str
    external_id: str
    email: str | None = None
    name: str | None = None
    created_at: datetime


class _Unset:
    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class NewTask:
    title: str
    description: str | None = None
    due_date: datetime | None = None
    done: bool = False
    priority: Priority = Priority.NONE


@dataclass(frozen=True)
class TaskChanges:
    """Partial update. UNSET leaves a field alone; None clears a nullable one."""

    title: Any = UNSET
    description: Any = UNSET
    due_date: Any = UNSET
    done: Any = UNSET
    priority: Any = UNSET

    def present(self) -> dict[str, Any]:
        return {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.present()


class TaskQuery(BaseModel):
    done: bool | None = None
    priority: Priority | None = None
    q: str | None = None
    limit: int = Field(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT)

    def search_term(self) -> str | None:
        if self.q is None:
            return None
        term = self.q.strip()
        return term or None


def sort_key(record: TaskRecord) -> tuple[int, float, str]:
    """Default list ordering: severity, then newest first, then id."""
    return (record.priority.rank, -record.created_at.timestamp(), record.id)


def matches_query(record: TaskRecord, query: TaskQuery) -> bool:
    if query.done is not None and record.done != query.done:
        return False
    if query.priority is not None and record.priority != query.priority:
        return False
    term = query.search_term()
    if term is None:
        return True
    needle = term.casefold()
    if needle in record.title.casefold():
        return True
    return record.description is not None and needle in record.description.casefold()
