"""Transcript events and the append-only log they are recorded in.

The agent loop only ever appends to a `Transcript`. Consumers (the NDJSON
chat endpoint, the console, the view reconciler) fold over the same events;
`Transcript.to_messages()` is the fold that rebuilds chat-completions
history for the next turn.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

EventType = Literal[
    "user_message",
    "text_delta",
    "tool_call",
    "tool_result",
    "error",
    "step_limit",
    "done",
]


class TranscriptEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    seq: int = 0
    step: int | None = None
    text: str | None = None
    call_id: str | None = None
    tool: str | None = None
    args: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    widget: str | None = None
    kind: str | None = None
    outcome: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def to_ndjson(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=False) + "\n"


class Transcript:
    """Append-only, thread-safe sequence of transcript events."""

    def __init__(self, events: list[TranscriptEvent] | None = None) -> None:
        self._events: list[TranscriptEvent] = []
        self._lock = threading.Lock()
        for event in events or []:
            self.append(event)

    def append(self, event: TranscriptEvent) -> TranscriptEvent:
        with self._lock:
            stamped = event.model_copy(update={"seq": len(self._events) + 1})
            self._events.append(stamped)
        return stamped

    @property
    def events(self) -> tuple[TranscriptEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def __iter__(self) -> Iterator[TranscriptEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def final_text(self) -> str:
        """Text of the last model turn that produced any."""
        last_step: int | None = None
        chunks: list[str] = []
        for event in self.events:
            if event.type == "user_message":
                last_step, chunks = None, []
            elif event.type == "text_delta" and event.text:
                if event.step != last_step:
                    last_step, chunks = event.step, []
                chunks.append(event.text)
        return "".join(chunks)

    def to_messages(self) -> list[dict[str, Any]]:
        return fold_messages(self.events)


def fold_messages(events: tuple[TranscriptEvent, ...] | list[TranscriptEvent]) -> list[dict[str, Any]]:
    """Rebuild chat history from events.

    Assistant tool calls whose result never made it into the log (an aborted
    turn) are dropped so the history stays valid for the next request.
    """
    messages: list[dict[str, Any]] = []
    current: dict[str, Any] | None = None
    current_key: tuple[int, int | None] | None = None
    answered: set[str] = set()
    turn = 0

    for event in events:
        if event.type == "user_message":
            turn += 1
            current, current_key = None, None
            messages.append({"role": "user", "content": event.text or ""})
        elif event.type in ("text_delta", "tool_call"):
            key = (turn, event.step)
            if current is None or current_key != key:
                current = {"role": "assistant", "content": ""}
                current_key = key
                messages.append(current)
            if event.type == "text_delta":
                current["content"] += event.text or ""
            else:
                current.setdefault("tool_calls", []).append(
                    {
                        "id": event.call_id,
                        "type": "function",
                        "function": {
                            "name": event.tool,
                            "arguments": json.dumps(event.args or {}),
                        },
                    }
                )
        elif event.type == "tool_result":
            answered.add(event.call_id or "")
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": event.call_id,
                    "content": json.dumps(event.result or {}),
                }
            )

    cleaned: list[dict[str, Any]] = []
    for message in messages:
        if message["role"] == "assistant" and "tool_calls" in message:
            calls = [call for call in message["tool_calls"] if call["id"] in answered]
            message = dict(message)
            if calls:
                message["tool_calls"] = calls
            else:
                message.pop("tool_calls")
                if not message["content"]:
                    continue
        if message["role"] == "assistant" and not message.get("content"):
            message = dict(message)
            message["content"] = None
        cleaned.append(message)
    return cleaned


def user_message(text: str) -> TranscriptEvent:
    return TranscriptEvent(type="user_message", text=text)


def events_from_messages(messages: list[dict[str, Any]]) -> list[TranscriptEvent]:
    """Seed a transcript from chat-completions style history sent by a client."""
    events: list[TranscriptEvent] = []
    step = 0
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        text = content if isinstance(content, str) else ""
        if role == "user":
            events.append(TranscriptEvent(type="user_message", text=text))
        elif role == "assistant":
            step += 1
            if text:
                events.append(TranscriptEvent(type="text_delta", step=step, text=text))
            for call in message.get("tool_calls") or []:
                function = call.get("function") or {}
                events.append(
                    TranscriptEvent(
                        type="tool_call",
                        step=step,
                        call_id=call.get("id"),
                        tool=function.get("name"),
                        args=_parse_arguments(function.get("arguments")),
                    )
                )
        elif role == "tool":
            events.append(
                TranscriptEvent(
                    type="tool_result",
                    step=step,
                    call_id=message.get("tool_call_id"),
                    result=_parse_arguments(content),
                )
            )
    return events


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}
