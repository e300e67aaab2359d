"""Pydantic models for service inputs and the external task representation.

Inputs use camelCase aliases (the UI and the assistant tools both send
`dueDate`) but accept snake_case names as well. Unknown keys are ignored.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

from task_assistant.storage.models import Priority, TaskRecord

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


class InputModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CreateTaskInput(InputModel):
    title: Title
    description: str | None = None
    due_date: datetime | None = None
    done: bool = False
    priority: Priority | None = None

    @field_validator("due_date")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return _aware(value)


class TaskPatch(InputModel):
    """Partial update body. Which keys were sent is read from `model_fields_set`."""

    title: Title | None = None
    description: str | None = None
    due_date: datetime | None = None
    done: bool | None = None
    priority: Priority | None = None

    @field_validator("due_date")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return _aware(value)


class TaskOut(BaseModel):
    """Task as returned over HTTP and inside tool envelopes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    description: str | None = None
    due_date: str | None = None
    done: bool
    priority: Priority
    owner_id: str
    created_at: str
    updated_at: str

    @classmethod
    def from_record(cls, record: TaskRecord) -> TaskOut:
        return cls(
            id=record.id,
            title=record.title,
            description=record.description,
            due_date=iso_timestamp(record.due_date) if record.due_date else None,
            done=record.done,
            priority=record.priority,
            owner_id=record.owner_id,
            created_at=iso_timestamp(record.created_at),
            updated_at=iso_timestamp(record.updated_at),
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ListFilters(InputModel):
    done: bool | None = None
    q: str | None = None
    limit: int | None = Field(default=None, ge=1, le=100)
    priority: Priority | None = None


def iso_timestamp(value: datetime) -> str:
    """Render as UTC ISO-8601 with millisecond precision and a `Z` suffix."""
    aware = value if value.tzinfo else value.replace(tzinfo=UTC)
    return aware.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
