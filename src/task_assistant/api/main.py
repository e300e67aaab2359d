"""FastAPI app entrypoint for task-assistant."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Literal

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from task_assistant.agent import AgentLoop, AgentRun, ChatModel, Transcript, events_from_messages
from task_assistant.agent.models import resolve_chat_model
from task_assistant.config.settings import Settings, get_settings
from task_assistant.errors import TaskError, UnknownError, ValidationError, issues_from_pydantic
from task_assistant.services import TaskService
from task_assistant.storage.base import TaskStorage
from task_assistant.storage.memory import InMemoryTaskStorage
from task_assistant.storage.postgres import PostgresTaskStorage
from task_assistant.tools import ToolExecutor, build_registry, list_tools

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "tool"]
    content: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: TaskStorage | None,
) -> None:
    if not hasattr(app.state, "storage"):
        database_url = settings.resolved_database_url()
        if storage_override is not None:
            app.state.storage = storage_override
        elif database_url:
            app.state.storage = PostgresTaskStorage(database_url)
        else:
            logger.warning(
                "api event=storage_fallback reason=missing_database_url backend=memory "
                "hint='set TASK_ASSISTANT_DATABASE_URL or DATABASE_URL'"
            )
            app.state.storage = InMemoryTaskStorage()
        app.state.storage.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings


def create_app(
    *,
    storage: TaskStorage | None = None,
    settings_override: Settings | None = None,
    chat_model: ChatModel | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    if chat_model is None:
        resolution = resolve_chat_model(settings, clock=clock)
        chat_model = resolution.model
        assistant_mode = resolution.effective_mode
    else:
        assistant_mode = "custom"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, settings=settings, storage_override=storage)
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _ensure_runtime_state(app, settings=settings, storage_override=storage)

    def _get_task_storage(request: Request) -> TaskStorage:
        if not hasattr(request.app.state, "storage"):
            _ensure_runtime_state(request.app, settings=settings, storage_override=storage)
        return request.app.state.storage

    def _service(request: Request) -> TaskService:
        external_id = request.headers.get(settings.identity_header)
        return TaskService(
            _get_task_storage(request),
            lambda: external_id,
            auto_provision_users=settings.auto_provision_users,
        )

    @app.exception_handler(TaskError)
    async def task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = ValidationError("Validation failed", details=issues_from_pydantic(list(exc.errors())))
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("api event=unhandled_error path=%s", request.url.path)
        error = UnknownError("Internal server error")
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools")
    def tools() -> dict[str, Any]:
        return {"tools": list_tools(), "assistant_mode": assistant_mode}

    @app.post("/tasks", status_code=201)
    def create_task(request: Request, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
        task = _service(request).create_task(payload)
        return {"success": True, "data": task.to_wire()}

    @app.get("/tasks")
    def list_tasks(
        request: Request,
        done: bool | None = None,
        q: str | None = None,
        limit: int | None = None,
        priority: str | None = None,
    ) -> dict[str, Any]:
        filters = {"done": done, "q": q, "limit": limit, "priority": priority}
        tasks = _service(request).list_tasks(
            {key: value for key, value in filters.items() if value is not None}
        )
        return {"success": True, "data": [task.to_wire() for task in tasks]}

    @app.get("/tasks/{task_id}")
    def get_task(task_id: str, request: Request) -> dict[str, Any]:
        task = _service(request).get_task(task_id)
        return {"success": True, "data": task.to_wire()}

    @app.patch("/tasks/{task_id}")
    def update_task(
        task_id: str,
        request: Request,
        payload: dict[str, Any] = Body(...),
    ) -> dict[str, Any]:
        task = _service(request).update_task(task_id, payload)
        return {"success": True, "data": task.to_wire()}

    @app.delete("/tasks/{task_id}")
    def delete_task(task_id: str, request: Request) -> dict[str, Any]:
        _service(request).delete_task(task_id)
        return {"success": True, "message": "Task deleted successfully"}

    @app.post("/chat")
    def chat(payload: ChatRequest, request: Request) -> StreamingResponse:
        if payload.messages[-1].role != "user":
            raise ValidationError(
                "Validation failed",
                details=[{"field": "messages", "message": "Last message must be from the user"}],
            )
        service = _service(request)
        # Fail with 401 before the stream starts rather than inside it.
        service.resolver.resolve(service.identity())

        registry = build_registry(
            service,
            display_timezone=settings.display_timezone,
            clock=clock,
        )
        loop = AgentLoop(
            model=chat_model,
            executor=ToolExecutor(registry=registry, tool_timeout_s=settings.tool_timeout_s),
            registry=registry,
            max_steps=settings.max_agent_steps,
            response_timeout_s=settings.model_response_timeout_s,
        )
        history = Transcript(
            events_from_messages([message.model_dump(exclude_none=True) for message in payload.messages])
        )
        run = loop.run(history)
        return StreamingResponse(_ndjson(run), media_type="application/x-ndjson")

    return app


def _ndjson(run: AgentRun) -> Iterator[str]:
    for event in run:
        yield event.to_ndjson()


app = create_app()
