"""Strict Pydantic schemas for tool inputs and the uniform result envelope."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from task_assistant.storage.models import Priority


class StrictModel(BaseModel):
    """Base model for strict schema validation."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class CreateTaskToolInput(StrictModel):
    title: str = Field(description="The title or name of the task")
    description: str | None = Field(
        default=None, description="Optional detailed description of the task"
    )
    due_date: str | None = Field(
        default=None,
        description="Optional due date in ISO 8601 format (e.g., '2025-10-20T10:00:00Z')",
    )
    priority: Priority | None = Field(
        default=None, description="Task priority level. Defaults to NONE if not specified"
    )


class ListTasksToolInput(StrictModel):
    done: bool | None = Field(
        default=None,
        description=(
            "Filter by completion status. True for completed tasks, false for incomplete "
            "tasks. Leave undefined to show all tasks"
        ),
    )
    q: str | None = Field(
        default=None, description="Search query to filter tasks by title or description"
    )
    limit: int | None = Field(
        default=None, ge=1, le=100, description="Maximum number of tasks to return. Defaults to 50"
    )
    priority: Priority | None = Field(default=None, description="Filter tasks by priority level")


class UpdateTaskToolInput(StrictModel):
    id: str = Field(description="The unique ID of the task to update")
    title: str | None = Field(default=None, description="New title for the task")
    description: str | None = Field(
        default=None, description="New description for the task; null clears it"
    )
    done: bool | None = Field(default=None, description="New completion status for the task")
    due_date: str | None = Field(
        default=None,
        description="New due date in ISO 8601 format (e.g., '2025-10-20T10:00:00Z'); null clears it",
    )
    priority: Priority | None = Field(default=None, description="New priority level")


class DeleteTaskToolInput(StrictModel):
    id: str = Field(description="The unique ID of the task to delete")


class TimeOffset(StrictModel):
    minutes: int | None = Field(default=None, description="Number of minutes to offset")
    hours: int | None = Field(default=None, description="Number of hours to offset")
    days: int | None = Field(
        default=None,
        description="Number of days to offset (positive for future, negative for past)",
    )
    weeks: int | None = Field(default=None, description="Number of weeks to offset")
    months: int | None = Field(default=None, description="Number of months to offset")


TimeFormat = Literal["full", "date", "time", "relative"]


class GetTimeToolInput(StrictModel):
    offset: TimeOffset | None = Field(
        default=None,
        description="Time offset from current time. Leave empty for current time.",
    )
    format: TimeFormat = Field(
        default="full",
        description=(
            "Format of the output: full (date + time), date only, time only, "
            "or relative (e.g., 'in 2 days')"
        ),
    )


class ToolResult(BaseModel):
    """Envelope every tool call resolves to; executors never raise past it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    data: Any = None
    error_kind: str | None = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> ToolResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, message: str, error_kind: str, data: Any = None) -> ToolResult:
        return cls(success=False, message=message, error_kind=error_kind, data=data)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
