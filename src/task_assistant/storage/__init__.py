"""Storage backends and models."""

from task_assistant.storage.base import TaskRepository, TaskStorage, UserDirectory
from task_assistant.storage.memory import InMemoryTaskStorage
from task_assistant.storage.models import (
    UNSET,
    NewTask,
    Priority,
    TaskChanges,
    TaskQuery,
    TaskRecord,
    UserRecord,
)
from task_assistant.storage.postgres import PostgresTaskStorage

__all__ = [
    "UNSET",
    "InMemoryTaskStorage",
    "NewTask",
    "PostgresTaskStorage",
    "Priority",
    "TaskChanges",
    "TaskQuery",
    "TaskRecord",
    "TaskRepository",
    "TaskStorage",
    "UserDirectory",
    "UserRecord",
]
