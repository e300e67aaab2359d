"""Chat model selection with deterministic fallback."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from task_assistant.agent.deterministic import RuleBasedChatModel
from task_assistant.agent.llm import ChatModel, OpenAIChatModel
from task_assistant.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelResolution:
    model: ChatModel
    requested_mode: str
    effective_mode: str
    fallback_reason: str | None = None


def resolve_chat_model(
    settings: Settings,
    *,
    clock: Callable[[], datetime] | None = None,
) -> ModelResolution:
    normalized_mode = settings.assistant_mode.lower().strip()
    deterministic_model = RuleBasedChatModel(
        display_timezone=settings.display_timezone,
        clock=clock,
    )

    if normalized_mode != "llm":
        return ModelResolution(
            model=deterministic_model,
            requested_mode=normalized_mode,
            effective_mode="deterministic",
        )

    if settings.llm_provider.lower().strip() != "openai":
        return _fallback(
            deterministic_model,
            normalized_mode,
            f"unsupported llm provider: {settings.llm_provider}",
        )

    api_key = settings.resolved_openai_api_key()
    if not api_key:
        return _fallback(deterministic_model, normalized_mode, "missing OPENAI_API_KEY")

    try:
        model = OpenAIChatModel(
            api_key=api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout_s=settings.llm_timeout_s,
            max_retries=settings.llm_max_retries,
            backoff_s=settings.llm_backoff_s,
        )
    except Exception as exc:  # noqa: BLE001
        return _fallback(deterministic_model, normalized_mode, f"llm model init failed: {exc}")

    return ModelResolution(model=model, requested_mode=normalized_mode, effective_mode="llm")


def _fallback(model: ChatModel, requested_mode: str, reason: str) -> ModelResolution:
    logger.warning("chat_model event=fallback requested_mode=%s reason=%s", requested_mode, reason)
    return ModelResolution(
        model=model,
        requested_mode=requested_mode,
        effective_mode="deterministic",
        fallback_reason=reason,
    )
