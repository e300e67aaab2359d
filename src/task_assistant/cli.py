"""Command-line entrypoint: serve the API, chat in the console, list tools."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from typing import TextIO

import uvicorn

from task_assistant.agent import AgentLoop, Conversation
from task_assistant.agent.models import resolve_chat_model
from task_assistant.config.settings import Settings, get_settings
from task_assistant.errors import TaskError
from task_assistant.logging_setup import configure_logging
from task_assistant.services import TaskService, static_identity
from task_assistant.storage.base import TaskStorage
from task_assistant.storage.memory import InMemoryTaskStorage
from task_assistant.storage.postgres import PostgresTaskStorage
from task_assistant.tools import ToolExecutor, build_registry, tool_definitions
from task_assistant.views import (
    LocalCalendar,
    ViewReconciler,
    ViewSummary,
    default_views,
    group_by_due_date,
)
from task_assistant.views.state import ViewLoaded

logger = logging.getLogger(__name__)

VIEW_COMMANDS = {"/all": "all", "/today": "today", "/upcoming": "upcoming"}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="task-assistant",
        description="Conversational task manager backed by a tool-calling agent.",
    )
    parser.add_argument("--log-level", default=None, help="Override TASK_ASSISTANT_LOG_LEVEL.")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    chat = commands.add_parser("chat", help="Chat with the assistant in this terminal.")
    chat.add_argument("--user", default="local-user", help="External user id to act as.")

    commands.add_parser("tools", help="Print the tool schemas sent to the model.")
    return parser.parse_args(argv)


def _open_storage(settings: Settings) -> TaskStorage:
    database_url = settings.resolved_database_url()
    storage: TaskStorage
    if database_url:
        storage = PostgresTaskStorage(database_url)
    else:
        logger.warning("cli event=storage_fallback reason=missing_database_url backend=memory")
        storage = InMemoryTaskStorage()
    storage.migrate()
    return storage


def serve(args: argparse.Namespace) -> None:
    uvicorn.run(
        "task_assistant.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


def print_tools(settings: Settings, out: TextIO = sys.stdout) -> None:
    service = TaskService(InMemoryTaskStorage(), static_identity(None))
    registry = build_registry(service, display_timezone=settings.display_timezone)
    json.dump(tool_definitions(registry), out, indent=2)
    out.write("\n")


def chat(
    settings: Settings,
    *,
    user: str,
    stdin: TextIO = sys.stdin,
    out: TextIO = sys.stdout,
) -> None:
    storage = _open_storage(settings)
    service = TaskService(
        storage,
        static_identity(user),
        auto_provision_users=settings.auto_provision_users,
    )
    registry = build_registry(service, display_timezone=settings.display_timezone)
    resolution = resolve_chat_model(settings)
    loop = AgentLoop(
        model=resolution.model,
        executor=ToolExecutor(registry=registry, tool_timeout_s=settings.tool_timeout_s),
        registry=registry,
        max_steps=settings.max_agent_steps,
        response_timeout_s=settings.model_response_timeout_s,
    )
    conversation = Conversation(loop)
    calendar = LocalCalendar(settings.display_timezone)
    reconciler = ViewReconciler(default_views(display_timezone=settings.display_timezone))

    out.write(
        f"task-assistant ({resolution.effective_mode} mode). "
        "Commands: /all /today /upcoming /quit. Ctrl-C stops a reply.\n"
    )
    if resolution.fallback_reason:
        out.write(f"(fell back to deterministic mode: {resolution.fallback_reason})\n")

    for line in stdin:
        text = line.strip()
        if not text:
            continue
        if text in ("/quit", "/exit"):
            break
        if text in VIEW_COMMANDS:
            _print_view(reconciler, service, calendar, VIEW_COMMANDS[text], out)
            continue

        abort = threading.Event()
        try:
            run = conversation.send(text, abort=abort)
            for event in run:
                reconciler.apply_transcript_event(event)
                _print_event(event, out)
        except KeyboardInterrupt:
            abort.set()
            out.write("\n[stopped]\n")
        except TaskError as exc:
            out.write(f"error: {exc.message}\n")
        out.write("\n")
        out.flush()


def _print_event(event, out: TextIO) -> None:
    if event.type == "text_delta":
        out.write(event.text or "")
    elif event.type == "tool_call":
        out.write(f"\n  -> {event.tool} {json.dumps(event.args or {})}\n")
    elif event.type == "tool_result":
        result = event.result or {}
        marker = "ok" if result.get("success") else result.get("errorKind", "failed")
        out.write(f"  <- {event.tool} [{marker}] {result.get('message', '')}\n")
    elif event.type in ("error", "step_limit"):
        out.write(f"\n[{event.type}] {event.text}\n")
    out.flush()


def _print_view(
    reconciler: ViewReconciler,
    service: TaskService,
    calendar: LocalCalendar,
    view: str,
    out: TextIO,
) -> None:
    try:
        reconciler.dispatch(ViewLoaded(tasks=tuple(service.list_tasks({"limit": 100}))))
    except TaskError as exc:
        out.write(f"error: {exc.message}\n")
        return
    tasks = reconciler.state.tasks(view)
    summary = ViewSummary.of(tasks)
    out.write(f"{view}: {summary.pending} pending, {summary.completed} completed\n")
    for group in group_by_due_date(tasks, calendar=calendar):
        out.write(f"  {group.label}\n")
        for task in group.tasks:
            check = "x" if task.done else " "
            out.write(f"    [{check}] {task.title} ({task.priority.value})\n")


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    if args.command == "serve":
        serve(args)
    elif args.command == "chat":
        chat(settings, user=args.user)
    elif args.command == "tools":
        print_tools(settings)


if __name__ == "__main__":
    main()
