"""Tool registry: the fixed task tools bound to a TaskService."""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from task_assistant.errors import TaskError
from task_assistant.services.tasks import TaskService
from task_assistant.tools.clock import get_time
from task_assistant.tools.schemas import (
    CreateTaskToolInput,
    DeleteTaskToolInput,
    GetTimeToolInput,
    ListTasksToolInput,
    ToolResult,
    UpdateTaskToolInput,
)


class ToolName(str, Enum):
    CREATE_TASK = "createTask"
    LIST_TASKS = "listTasks"
    UPDATE_TASK = "updateTask"
    DELETE_TASK = "deleteTask"
    GET_TIME = "getTime"


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    input_model: type[BaseModel]
    fn: Callable[[Any], ToolResult]
    # Name of the inline widget the chat UI renders for this tool's result.
    widget: str | None = None

    def definition(self) -> dict[str, Any]:
        """OpenAI function-tool schema for this tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.input_model.model_json_schema(by_alias=True),
            },
        }


def build_registry(
    service: TaskService,
    *,
    display_timezone: str = "Asia/Kolkata",
    clock: Callable[[], datetime] | None = None,
) -> dict[ToolName, ToolSpec]:
    now = clock or (lambda: datetime.now(UTC))

    @_enveloped("Failed to create task")
    def create_task(payload: CreateTaskToolInput) -> ToolResult:
        task = service.create_task(payload.model_dump(exclude_unset=True))
        return ToolResult.ok(f'Task "{task.title}" created successfully', {"task": task.to_wire()})

    @_enveloped("Failed to fetch tasks")
    def list_tasks(payload: ListTasksToolInput) -> ToolResult:
        tasks = service.list_tasks(payload.model_dump(exclude_unset=True))
        return ToolResult.ok(
            f"Found {len(tasks)} task(s)",
            {"tasks": [task.to_wire() for task in tasks]},
        )

    @_enveloped("Failed to update task")
    def update_task(payload: UpdateTaskToolInput) -> ToolResult:
        changes = payload.model_dump(exclude_unset=True)
        task_id = changes.pop("id")
        task = service.update_task(task_id, changes)
        return ToolResult.ok(f'Task "{task.title}" updated successfully', {"task": task.to_wire()})

    @_enveloped("Failed to delete task")
    def delete_task(payload: DeleteTaskToolInput) -> ToolResult:
        service.delete_task(payload.id)
        return ToolResult.ok("Task deleted successfully", {"id": payload.id})

    @_enveloped("Failed to get time")
    def get_time_tool(payload: GetTimeToolInput) -> ToolResult:
        data = get_time(
            now=now(),
            offset=payload.offset,
            fmt=payload.format,
            timezone=display_timezone,
        )
        return ToolResult.ok(data["formatted"], data)

    specs = [
        ToolSpec(
            name=ToolName.CREATE_TASK,
            description=(
                "Create a new task for the authenticated user. Use this tool when the user "
                "wants to add a new task, todo item, or reminder to their task list."
            ),
            input_model=CreateTaskToolInput,
            fn=create_task,
            widget="task-card",
        ),
        ToolSpec(
            name=ToolName.LIST_TASKS,
            description=(
                "Get a list of tasks for the authenticated user. Use this tool when the user "
                "wants to see their tasks, view their todo list, or search for specific tasks."
            ),
            input_model=ListTasksToolInput,
            fn=list_tasks,
            widget="task-list",
        ),
        ToolSpec(
            name=ToolName.UPDATE_TASK,
            description=(
                "Update an existing task for the authenticated user. Use this tool when the "
                "user wants to modify task details, change the title, description, priority, "
                "completion status, or due date."
            ),
            input_model=UpdateTaskToolInput,
            fn=update_task,
        ),
        ToolSpec(
            name=ToolName.DELETE_TASK,
            description=(
                "Delete a task for the authenticated user. Use this tool when the user wants "
                "to remove or delete a task from their list."
            ),
            input_model=DeleteTaskToolInput,
            fn=delete_task,
        ),
        ToolSpec(
            name=ToolName.GET_TIME,
            description=(
                "Use this tool to get current time or future/past time. Supports offsets "
                "like days, hours, weeks, etc."
            ),
            input_model=GetTimeToolInput,
            fn=get_time_tool,
        ),
    ]
    return {spec.name: spec for spec in specs}


def tool_definitions(registry: dict[ToolName, ToolSpec]) -> list[dict[str, Any]]:
    return [spec.definition() for spec in registry.values()]


def list_tools() -> list[str]:
    return sorted(name.value for name in ToolName)


def resolve_tool_name(raw: str) -> ToolName | None:
    try:
        return ToolName(raw)
    except ValueError:
        return None


def _enveloped(failure_message: str):
    def decorator(fn: Callable[[Any], ToolResult]) -> Callable[[Any], ToolResult]:
        @functools.wraps(fn)
        def wrapper(payload: Any) -> ToolResult:
            try:
                return fn(payload)
            except TaskError as exc:
                data = {"details": exc.details} if exc.details else None
                return ToolResult.failure(exc.message or failure_message, exc.kind, data)

        return wrapper

    return decorator
