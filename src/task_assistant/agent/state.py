"""Typed state contract for the agent turn graph."""

from enum import Enum
from typing import Any, TypedDict


class AgentPhase(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    MODEL_RESPONDED = "model_responded"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"


class AgentState(TypedDict, total=False):
    messages: list[dict[str, Any]]
    phase: AgentPhase
    step: int
    max_steps: int
    pending_calls: list[dict[str, Any]]
    outcome: str | None


def initial_state(messages: list[dict[str, Any]], max_steps: int = 20) -> AgentState:
    return {
        "messages": list(messages),
        "phase": AgentPhase.AWAITING_MODEL,
        "step": 0,
        "max_steps": max_steps,
        "pending_calls": [],
        "outcome": None,
    }
