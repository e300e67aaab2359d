"""Task service layer."""

from task_assistant.services.identity import IdentityProvider, IdentityResolver, static_identity
from task_assistant.services.schemas import (
    CreateTaskInput,
    ListFilters,
    TaskOut,
    TaskPatch,
    iso_timestamp,
)
from task_assistant.services.tasks import TaskService, changes_from_patch

__all__ = [
    "CreateTaskInput",
    "IdentityProvider",
    "IdentityResolver",
    "ListFilters",
    "TaskOut",
    "TaskPatch",
    "TaskService",
    "changes_from_patch",
    "iso_timestamp",
    "static_identity",
]
