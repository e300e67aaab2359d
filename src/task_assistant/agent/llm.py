"""Chat model protocol and the OpenAI-compatible streaming adapter."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib import error, request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolInvocation:
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


ModelChunk = TextDelta | ToolInvocation


class ChatModel(Protocol):
    def stream(
        self,
        *,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]],
        system: str,
    ) -> Iterator[ModelChunk]:
        """Yield text deltas as they arrive, then the turn's tool invocations."""
        ...


class OpenAIChatModel:
    """Streams chat-completions over SSE.

    Retries only cover opening the stream; once chunks have been yielded a
    failure propagates to the caller.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
    ) -> None:
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is missing")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    def stream(
        self,
        *,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]],
        system: str,
    ) -> Iterator[ModelChunk]:
        request_body = _chat_request_body(
            model=self.model,
            messages=messages,
            tools=tools,
            system=system,
        )
        response = self._open_with_retry(request_body)
        with response:
            yield from parse_sse_stream(response)

    def _open_with_retry(self, request_body: dict[str, Any]):
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._open_once(request_body)
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                logger.warning(
                    "chat_model event=request_failed attempt=%s model=%s error=%s",
                    attempt + 1,
                    self.model,
                    exc,
                )
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s)

        if last_error is None:
            raise RuntimeError("LLM chat request failed")
        raise last_error

    def _open_once(self, request_body: dict[str, Any]):
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        req = request.Request(
            url=url,
            data=json.dumps(request_body).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
            },
        )
        try:
            return request.urlopen(req, timeout=self.timeout_s)
        except error.HTTPError as exc:
            message = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(
                f"LLM chat request failed with status {exc.code}: {message[:400]}"
            ) from exc
        except error.URLError as exc:
            raise RuntimeError(f"LLM chat request failed: {exc.reason}") from exc


def parse_sse_stream(lines: Iterable[bytes | str]) -> Iterator[ModelChunk]:
    """Turn chat-completions SSE lines into text deltas and tool invocations.

    Tool call fragments are accumulated by index and emitted, in index
    order, once the stream ends.
    """
    calls: dict[int, dict[str, str]] = {}
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            break
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as exc:
            raise RuntimeError("LLM stream returned non-JSON chunk") from exc

        for choice in chunk.get("choices") or []:
            delta = choice.get("delta") or {}
            content = delta.get("content")
            if content:
                yield TextDelta(content)
            for fragment in delta.get("tool_calls") or []:
                slot = calls.setdefault(
                    int(fragment.get("index", 0)),
                    {"id": "", "name": "", "arguments": ""},
                )
                if fragment.get("id"):
                    slot["id"] = fragment["id"]
                function = fragment.get("function") or {}
                slot["name"] += function.get("name") or ""
                slot["arguments"] += function.get("arguments") or ""

    for index in sorted(calls):
        slot = calls[index]
        yield ToolInvocation(
            id=slot["id"] or f"call_{index}",
            name=slot["name"],
            args=_decode_arguments(slot["arguments"]),
        )


def _decode_arguments(raw: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        # Left for schema validation to reject.
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"_raw": raw}


def _chat_request_body(
    *,
    model: str,
    messages: Sequence[dict[str, Any]],
    tools: Sequence[dict[str, Any]],
    system: str,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": model,
        "temperature": 0,
        "stream": True,
        "messages": [{"role": "system", "content": system}, *messages],
    }
    if tools:
        body["tools"] = list(tools)
        body["tool_choice"] = "auto"
    return body
