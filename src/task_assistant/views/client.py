"""HTTP task gateway used by the board and the console."""

from __future__ import annotations

import json
from typing import Any
from urllib import error, parse, request

from pydantic import ValidationError as PydanticValidationError

from task_assistant.errors import (
    AuthenticationError,
    NotFoundError,
    TaskError,
    ToolTimeoutError,
    UnknownError,
    ValidationError,
)
from task_assistant.services.schemas import TaskOut

_ERRORS_BY_STATUS: dict[int, type[TaskError]] = {
    400: ValidationError,
    401: AuthenticationError,
    404: NotFoundError,
}


class TaskApiClient:
    """Talks to the `/tasks` endpoints as one user."""

    def __init__(
        self,
        base_url: str,
        *,
        user_id: str,
        identity_header: str = "X-User-Id",
        timeout_s: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.identity_header = identity_header
        self.timeout_s = timeout_s

    def list_tasks(self, **filters: Any) -> list[TaskOut]:
        query = {
            key: str(value).lower() if isinstance(value, bool) else str(value)
            for key, value in filters.items()
            if value is not None
        }
        data = self._request_json(method="GET", path="/tasks", query=query)
        return [_task_from(item) for item in data or []]

    def create_task(self, payload: dict[str, Any]) -> TaskOut:
        data = self._request_json(method="POST", path="/tasks", payload=payload)
        return _task_from(data)

    def get_task(self, task_id: str) -> TaskOut:
        data = self._request_json(method="GET", path=f"/tasks/{parse.quote(task_id)}")
        return _task_from(data)

    def update_task(self, task_id: str, changes: dict[str, Any]) -> TaskOut:
        data = self._request_json(
            method="PATCH",
            path=f"/tasks/{parse.quote(task_id)}",
            payload=changes,
        )
        return _task_from(data)

    def delete_task(self, task_id: str) -> None:
        self._request_json(method="DELETE", path=f"/tasks/{parse.quote(task_id)}")

    def _request_json(
        self,
        *,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        query: dict[str, str] | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{parse.urlencode(query)}"
        raw_payload: bytes | None = None
        headers = {"Accept": "application/json", self.identity_header: self.user_id}
        if payload is not None:
            raw_payload = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = request.Request(url=url, method=method, data=raw_payload, headers=headers)
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = _decode_body(response.read().decode("utf-8"))
        except error.HTTPError as exc:
            body = _decode_body(exc.read().decode("utf-8", errors="replace"))
            raise _error_from_response(exc.code, body) from exc
        except error.URLError as exc:
            raise UnknownError(f"Task API request failed: {exc.reason}") from exc
        except TimeoutError as exc:
            raise ToolTimeoutError(f"Task API request timed out after {self.timeout_s:g}s") from exc
        except OSError as exc:
            raise UnknownError(f"Task API request failed: {exc}") from exc

        if isinstance(body, dict) and body.get("success") is False:
            raise _error_from_response(500, body)
        return body.get("data") if isinstance(body, dict) else body


def _task_from(data: Any) -> TaskOut:
    try:
        return TaskOut.model_validate(data)
    except PydanticValidationError as exc:
        raise UnknownError("Task API returned a malformed task") from exc


def _error_from_response(status: int, body: Any) -> TaskError:
    message = None
    details = None
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
        details = body.get("details")
    error_type = _ERRORS_BY_STATUS.get(status, UnknownError)
    return error_type(message, details=details if isinstance(details, list) else None)


def _decode_body(body: str) -> Any:
    if not body:
        return {}
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return {"raw": body}
