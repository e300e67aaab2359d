"""Schema-enforcing tool execution gateway with timeout telemetry."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from task_assistant.errors import issues_from_pydantic
from task_assistant.tools.registry import ToolName, ToolSpec, resolve_tool_name
from task_assistant.tools.schemas import ToolResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCall:
    name: str
    args: dict[str, Any]


class ToolExecutor:
    """Execute registered tools with strict validation and per-call timeouts.

    Calls passed to `execute_many` are independent and run concurrently; the
    returned results keep the order of the calls, not of their completion.
    A call that exceeds the timeout resolves to a `Timeout` envelope; its
    worker is left to finish in the background and its outcome is dropped.
    """

    def __init__(
        self,
        *,
        registry: dict[ToolName, ToolSpec],
        tool_timeout_s: float = 5.0,
    ) -> None:
        self.registry = registry
        self.tool_timeout_s = tool_timeout_s

    def execute(self, name: str, args: dict[str, Any]) -> ToolResult:
        return self.execute_many([ToolCall(name=name, args=args)])[0]

    def execute_many(self, calls: Sequence[ToolCall]) -> list[ToolResult]:
        if not calls:
            return []
        started_at = time.perf_counter()
        results: list[ToolResult | None] = [None] * len(calls)
        pending: dict[int, tuple[ToolSpec, BaseModel]] = {}

        for index, call in enumerate(calls):
            prepared = self._prepare(call)
            if isinstance(prepared, ToolResult):
                results[index] = prepared
            else:
                pending[index] = prepared

        if pending:
            pool = ThreadPoolExecutor(
                max_workers=len(pending),
                thread_name_prefix="tool",
            )
            try:
                futures: dict[int, Future[ToolResult]] = {
                    index: pool.submit(spec.fn, payload)
                    for index, (spec, payload) in pending.items()
                }
                deadline = started_at + self.tool_timeout_s
                for index, future in futures.items():
                    results[index] = self._collect(
                        calls[index].name,
                        future,
                        timeout_s=max(0.0, deadline - time.perf_counter()),
                    )
            finally:
                pool.shutdown(wait=False)

        for call, result in zip(calls, results):
            logger.info(
                "tool_call event=completed tool=%s success=%s error_kind=%s duration_ms=%s",
                call.name,
                result.success if result else None,
                result.error_kind if result else None,
                _duration_ms(started_at),
            )
        return [result for result in results if result is not None]

    def _prepare(self, call: ToolCall) -> tuple[ToolSpec, BaseModel] | ToolResult:
        tool_name = resolve_tool_name(call.name)
        spec = self.registry.get(tool_name) if tool_name is not None else None
        if spec is None:
            return ToolResult.failure(f"Unknown tool: {call.name}", "ValidationError")
        try:
            payload = spec.input_model.model_validate(call.args or {})
        except PydanticValidationError as exc:
            return ToolResult.failure(
                f"Invalid arguments for {call.name}",
                "ValidationError",
                {"details": issues_from_pydantic(exc.errors())},
            )
        return spec, payload

    def _collect(self, name: str, future: Future[ToolResult], *, timeout_s: float) -> ToolResult:
        try:
            output = future.result(timeout=timeout_s)
        except TimeoutError:
            logger.warning("tool_call event=timeout tool=%s timeout_s=%.2f", name, self.tool_timeout_s)
            return ToolResult.failure(
                f"Tool '{name}' timed out after {self.tool_timeout_s:.2f}s",
                "Timeout",
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("tool_call event=failed tool=%s", name)
            return ToolResult.failure(str(exc) or f"Tool '{name}' failed", "UnknownError")
        if not isinstance(output, ToolResult):
            return ToolResult.failure(f"Tool '{name}' returned no result", "UnknownError")
        return output


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
