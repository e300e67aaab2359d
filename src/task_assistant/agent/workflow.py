"""LangGraph assembly for one agent turn."""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from typing import Any

from langgraph.graph import END, StateGraph

from task_assistant.agent.events import TranscriptEvent
from task_assistant.agent.llm import ChatModel, TextDelta, ToolInvocation
from task_assistant.agent.state import AgentPhase, AgentState
from task_assistant.tools.gateway import ToolCall, ToolExecutor

logger = logging.getLogger(__name__)

Emit = Callable[[TranscriptEvent], None]


class ModelResponseTimeout(Exception):
    """The model kept streaming past the response deadline."""


def build_graph(
    *,
    model: ChatModel,
    executor: ToolExecutor,
    tool_schemas: Sequence[dict[str, Any]],
    widgets: dict[str, str],
    system: str,
    max_steps: int,
    emit: Emit,
    abort: threading.Event,
    response_timeout_s: float | None = None,
):
    def call_model(state: AgentState) -> AgentState:
        step = int(state.get("step", 0)) + 1
        text_parts: list[str] = []
        invocations: list[ToolInvocation] = []
        logger.debug("agent_turn event=phase phase=%s step=%s", AgentPhase.AWAITING_MODEL.value, step)
        deadline = time.monotonic() + response_timeout_s if response_timeout_s else None
        stream = None
        try:
            stream = model.stream(
                messages=state.get("messages", []),
                tools=tool_schemas,
                system=system,
            )
            for chunk in stream:
                if abort.is_set():
                    break
                if deadline is not None and time.monotonic() > deadline:
                    raise ModelResponseTimeout()
                if isinstance(chunk, TextDelta):
                    text_parts.append(chunk.text)
                    emit(TranscriptEvent(type="text_delta", step=step, text=chunk.text))
                elif isinstance(chunk, ToolInvocation):
                    invocation = chunk if chunk.id else ToolInvocation(
                        id=f"call_{uuid.uuid4().hex[:12]}", name=chunk.name, args=chunk.args
                    )
                    invocations.append(invocation)
                    emit(
                        TranscriptEvent(
                            type="tool_call",
                            step=step,
                            call_id=invocation.id,
                            tool=invocation.name,
                            args=invocation.args,
                        )
                    )
        except ModelResponseTimeout:
            logger.warning(
                "agent_turn event=model_timeout step=%s timeout_s=%s", step, response_timeout_s
            )
            emit(
                TranscriptEvent(
                    type="error",
                    step=step,
                    kind="Timeout",
                    text=f"Model response timed out after {response_timeout_s:g}s",
                )
            )
            return {"step": step, "phase": AgentPhase.DONE, "pending_calls": [], "outcome": "error"}
        except Exception as exc:  # noqa: BLE001
            logger.exception("agent_turn event=model_failed step=%s", step)
            emit(
                TranscriptEvent(
                    type="error",
                    step=step,
                    kind="UnknownError",
                    text=f"Model request failed: {exc}",
                )
            )
            return {
                "step": step,
                "phase": AgentPhase.DONE,
                "pending_calls": [],
                "outcome": "error",
            }
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

        assistant: dict[str, Any] = {"role": "assistant", "content": "".join(text_parts) or None}
        if invocations:
            assistant["tool_calls"] = [
                {
                    "id": invocation.id,
                    "type": "function",
                    "function": {"name": invocation.name, "arguments": json.dumps(invocation.args)},
                }
                for invocation in invocations
            ]
        logger.info(
            "agent_turn event=model_responded step=%s text_chars=%s tool_calls=%s",
            step,
            len(assistant["content"] or ""),
            len(invocations),
        )
        return {
            "messages": [*state.get("messages", []), assistant],
            "step": step,
            "phase": AgentPhase.MODEL_RESPONDED,
            "pending_calls": [
                {"id": invocation.id, "name": invocation.name, "args": invocation.args}
                for invocation in invocations
            ],
        }

    def dispatch_tools(state: AgentState) -> AgentState:
        calls = state.get("pending_calls", [])
        step = int(state.get("step", 0))
        logger.debug("agent_turn event=phase phase=%s step=%s", AgentPhase.DISPATCHING_TOOLS.value, step)
        results = executor.execute_many([ToolCall(name=call["name"], args=call["args"]) for call in calls])

        messages = list(state.get("messages", []))
        for call, result in zip(calls, results):
            wire = result.to_wire()
            messages.append(
                {"role": "tool", "tool_call_id": call["id"], "content": json.dumps(wire)}
            )
            emit(
                TranscriptEvent(
                    type="tool_result",
                    step=step,
                    call_id=call["id"],
                    tool=call["name"],
                    result=wire,
                    widget=widgets.get(call["name"]) if result.success else None,
                )
            )
        return {
            "messages": messages,
            "pending_calls": [],
            "phase": AgentPhase.AWAITING_MODEL,
        }

    def finish(state: AgentState) -> AgentState:
        return {"phase": AgentPhase.DONE, "outcome": "completed"}

    def step_limit(state: AgentState) -> AgentState:
        logger.warning("agent_turn event=step_limit max_steps=%s", max_steps)
        emit(
            TranscriptEvent(
                type="step_limit",
                step=int(state.get("step", 0)),
                text=f"Stopped after {max_steps} steps without a final answer.",
            )
        )
        return {"phase": AgentPhase.DONE, "outcome": "step_limit"}

    def _after_model(state: AgentState) -> str:
        if state.get("outcome") == "error" or abort.is_set():
            return "end"
        if state.get("pending_calls"):
            return "dispatch"
        return "finish"

    def _after_tools(state: AgentState) -> str:
        if abort.is_set():
            return "end"
        if int(state.get("step", 0)) >= max_steps:
            return "limit"
        return "continue"

    graph = StateGraph(AgentState)

    graph.add_node("call_model", call_model)
    graph.add_node("dispatch_tools", dispatch_tools)
    graph.add_node("finish", finish)
    graph.add_node("step_limit", step_limit)

    graph.set_entry_point("call_model")
    graph.add_conditional_edges(
        "call_model",
        _after_model,
        {"dispatch": "dispatch_tools", "finish": "finish", "end": END},
    )
    graph.add_conditional_edges(
        "dispatch_tools",
        _after_tools,
        {"continue": "call_model", "limit": "step_limit", "end": END},
    )
    graph.add_edge("finish", END)
    graph.add_edge("step_limit", END)

    return graph.compile()
