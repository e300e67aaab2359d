"""Agent loop: runs the turn graph and streams transcript events."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator, Sequence
from typing import Any

from task_assistant.agent.events import Transcript, TranscriptEvent, events_from_messages
from task_assistant.agent.llm import ChatModel
from task_assistant.agent.prompts import SYSTEM_DIRECTIVE
from task_assistant.agent.state import AgentState, initial_state
from task_assistant.agent.workflow import build_graph
from task_assistant.tools.gateway import ToolExecutor
from task_assistant.tools.registry import ToolName, ToolSpec, tool_definitions

logger = logging.getLogger(__name__)

_FINISHED = object()


class AgentLoop:
    """Drives model and tool round-trips for one conversation turn.

    The turn graph runs on a worker thread and appends events to the
    transcript as they happen; `run()` returns an `AgentRun` that yields
    them live.
    """

    def __init__(
        self,
        *,
        model: ChatModel,
        executor: ToolExecutor,
        registry: dict[ToolName, ToolSpec],
        system: str = SYSTEM_DIRECTIVE,
        max_steps: int = 20,
        response_timeout_s: float | None = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.model = model
        self.executor = executor
        self.system = system
        self.max_steps = max_steps
        self.response_timeout_s = response_timeout_s
        self.tool_schemas = tool_definitions(registry)
        self.widgets = {spec.name.value: spec.widget for spec in registry.values() if spec.widget}

    def run(
        self,
        history: Transcript | Sequence[dict[str, Any]],
        *,
        abort: threading.Event | None = None,
        on_finish: Callable[[AgentRun], None] | None = None,
    ) -> AgentRun:
        transcript = history if isinstance(history, Transcript) else Transcript(
            events_from_messages(list(history))
        )
        agent_run = AgentRun(
            loop=self,
            transcript=transcript,
            abort=abort or threading.Event(),
            on_finish=on_finish,
        )
        agent_run.start()
        return agent_run


class AgentRun:
    """One running turn. Iterate it for live events; set `abort` to stop early.

    Once abort is observed nothing more is appended or yielded. A tool
    call already in flight still completes on its worker thread.
    """

    def __init__(
        self,
        *,
        loop: AgentLoop,
        transcript: Transcript,
        abort: threading.Event,
        on_finish: Callable[[AgentRun], None] | None = None,
    ) -> None:
        self.loop = loop
        self.transcript = transcript
        self.abort_event = abort
        self.outcome: str | None = None
        self.final_state: AgentState | None = None
        self._on_finish = on_finish
        self._queue: queue.Queue[Any] = queue.Queue()
        self._emit_lock = threading.Lock()
        self._finished = threading.Event()
        self._thread = threading.Thread(target=self._work, name="agent-turn", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def abort(self) -> None:
        with self._emit_lock:
            self.abort_event.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._finished.wait(timeout)

    @property
    def messages(self) -> list[dict[str, Any]]:
        if self.final_state is not None:
            return list(self.final_state.get("messages", []))
        return self.transcript.to_messages()

    def __iter__(self) -> Iterator[TranscriptEvent]:
        try:
            while True:
                try:
                    item = self._queue.get(timeout=0.05)
                except queue.Empty:
                    if self.abort_event.is_set():
                        return
                    continue
                if item is _FINISHED:
                    return
                if self.abort_event.is_set():
                    return
                yield item
        finally:
            if not self._finished.is_set():
                self.abort()

    def _emit(self, event: TranscriptEvent) -> None:
        with self._emit_lock:
            if self.abort_event.is_set():
                return
            self._queue.put(self.transcript.append(event))

    def _work(self) -> None:
        outcome = "completed"
        try:
            graph = build_graph(
                model=self.loop.model,
                executor=self.loop.executor,
                tool_schemas=self.loop.tool_schemas,
                widgets=self.loop.widgets,
                system=self.loop.system,
                max_steps=self.loop.max_steps,
                emit=self._emit,
                abort=self.abort_event,
                response_timeout_s=self.loop.response_timeout_s,
            )
            self.final_state = graph.invoke(
                initial_state(self.transcript.to_messages(), max_steps=self.loop.max_steps),
                config={"recursion_limit": self.loop.max_steps * 2 + 5},
            )
            outcome = str(self.final_state.get("outcome") or "completed")
        except Exception as exc:  # noqa: BLE001
            logger.exception("agent_turn event=failed")
            self._emit(TranscriptEvent(type="error", kind="UnknownError", text=str(exc)))
            outcome = "error"

        if self.abort_event.is_set():
            outcome = "aborted"
        self.outcome = outcome
        self._emit(TranscriptEvent(type="done", outcome=outcome))
        logger.info("agent_turn event=finished outcome=%s events=%s", outcome, len(self.transcript))
        try:
            if self._on_finish is not None:
                self._on_finish(self)
        finally:
            self._finished.set()
            self._queue.put(_FINISHED)
