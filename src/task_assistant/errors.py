"""Error taxonomy shared by the service, tool gateway, agent loop, and API.

Every failure that crosses a component boundary is one of these classes.
`kind` is the machine-checkable name (also used as `errorKind` in tool
envelopes) and `status_code` is the HTTP status the API answers with.
"""

from __future__ import annotations

from typing import Any


class TaskError(Exception):
    """Base class for classified task-assistant failures."""

    kind = "UnknownError"
    status_code = 500
    default_message = "Something went wrong"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = list(details or [])
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "kind": self.kind,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TaskError):
    kind = "ValidationError"
    status_code = 400
    default_message = "Validation failed"


class AuthenticationError(TaskError):
    kind = "AuthenticationError"
    status_code = 401
    default_message = "Authentication required"


class NotFoundError(TaskError):
    kind = "NotFoundError"
    status_code = 404
    default_message = "Task not found"


class ToolTimeoutError(TaskError):
    kind = "Timeout"
    status_code = 504
    default_message = "Operation timed out"


class ConversationBusyError(TaskError):
    kind = "ConversationBusy"
    status_code = 409
    default_message = "A reply is already in progress for this conversation"


class UnknownError(TaskError):
    kind = "UnknownError"
    status_code = 500
    default_message = "Internal server error"


def issues_from_pydantic(errors: list[dict[str, Any]]) -> list[dict[str, str]]:
    """Flatten pydantic error dicts into `{field, message}` pairs for the UI."""
    issues: list[dict[str, str]] = []
    for item in errors:
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query")]
        issues.append(
            {
                "field": ".".join(location),
                "message": str(item.get("msg", "Invalid value")),
            }
        )
    return issues
