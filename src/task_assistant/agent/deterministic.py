"""Rule-based chat model for deterministic mode.

Maps a handful of phrasings onto tool calls with regular expressions and
summarises tool results without any network access. It reads the whole
history on each call, so multi-step intents ("delete the task called X")
work across model turns the same way an LLM would: look the task up,
then act on the id it found.
"""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from task_assistant.agent.llm import ModelChunk, TextDelta, ToolInvocation
from task_assistant.tools.registry import ToolName

_CREATE = re.compile(
    r"^\s*(?:please\s+)?(?:create|add|make)\b\s*(?:(?:a|an|new|another)\s+)*"
    r"(?:(?P<priority>urgent|high[- ]priority|medium[- ]priority|low[- ]priority)\s+)?"
    r"(?:task|todo|to-do|reminder)?\s*(?:called|named|titled|to|:)?\s*(?P<body>.+?)\s*[.!]?\s*$",
    re.IGNORECASE,
)
_REMIND = re.compile(r"^\s*remind me\s+(?:to\s+)?(?P<body>.+?)\s*[.!]?\s*$", re.IGNORECASE)
_DUE_SUFFIX = re.compile(
    r"^(?P<title>.+?)\s+(?:due\s+|by\s+|for\s+)?(?P<due>today|tomorrow)$", re.IGNORECASE
)
_COMPLETE = (
    re.compile(
        r"^\s*(?:please\s+)?(?:mark|set)\s+(?P<title>.+?)\s+as\s+"
        r"(?:done|complete|completed|finished)\s*[.!]?\s*$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^\s*(?:please\s+)?(?:complete|finish|check off)\s+(?P<title>.+?)\s*[.!]?\s*$",
        re.IGNORECASE,
    ),
)
_DELETE = re.compile(
    r"^\s*(?:please\s+)?(?:delete|remove)\s+(?P<title>.+?)\s*[.!]?\s*$", re.IGNORECASE
)
_TIME = re.compile(
    r"\b(?:what(?:'s| is)? the (?:time|date)|what time|what day|today's date|"
    r"current (?:time|date))\b",
    re.IGNORECASE,
)
_LIST_VERB = re.compile(
    r"\b(?:show|list|display|see|view|what(?:'s| is| are)|give me)\b", re.IGNORECASE
)
_LIST_NOUN = re.compile(r"\b(?:tasks?|todos?|to-dos?)\b", re.IGNORECASE)
_PRIORITY_WORD = re.compile(r"\b(urgent|high|medium|low)\b", re.IGNORECASE)
_DONE_WORDS = re.compile(r"\b(?:done|completed|finished)\b", re.IGNORECASE)
_OPEN_WORDS = re.compile(
    r"\b(?:pending|open|incomplete|remaining|unfinished|outstanding)\b", re.IGNORECASE
)
_SEARCH = re.compile(
    r"\b(?:about|matching|containing|mentioning)\s+[\"']?(?P<q>[^\"']+?)[\"']?\s*[?.!]?\s*$",
    re.IGNORECASE,
)
_TASK_PREFIX = re.compile(r"^(?:the\s+)?(?:task\s+)?(?:called\s+|named\s+)?", re.IGNORECASE)
_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_QUOTES = "\"'“”‘’"

HELP_TEXT = (
    "I can create, list, update, complete and delete your tasks, and tell you the time. "
    'Try "create a task called Buy milk" or "show my urgent tasks".'
)


@dataclass(frozen=True)
class Intent:
    """What the user asked for, plus the follow-up action for lookups by title."""

    calls: list[tuple[ToolName, dict[str, Any]]] = field(default_factory=list)
    follow_up: str | None = None
    subject: str | None = None
    reply: str | None = None


class RuleBasedChatModel:
    def __init__(
        self,
        *,
        display_timezone: str = "Asia/Kolkata",
        clock: Callable[[], datetime] | None = None,
        due_hour: int = 18,
    ) -> None:
        self.tz = ZoneInfo(display_timezone)
        self.clock = clock or (lambda: datetime.now(UTC))
        self.due_hour = due_hour

    def stream(
        self,
        *,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]],
        system: str,
    ) -> Iterator[ModelChunk]:
        user_index = _last_index(messages, "user")
        if user_index is None:
            yield from _text(HELP_TEXT)
            return

        intent = self.interpret(str(messages[user_index].get("content") or ""))
        latest = _latest_round(messages[user_index + 1 :])
        if latest is None:
            if intent.reply is not None:
                yield from _text(intent.reply)
                return
            for name, args in intent.calls:
                yield ToolInvocation(id=_call_id(), name=name.value, args=args)
            return

        names, results = latest
        if intent.follow_up and names == [ToolName.LIST_TASKS.value]:
            yield from self._follow_up(intent, results[0])
            return
        yield from _text(summarize(names, results))

    def interpret(self, text: str) -> Intent:
        create = _CREATE.match(text) or _REMIND.match(text)
        if create:
            return self._create_intent(create)

        for pattern in _COMPLETE:
            match = pattern.match(text)
            if match:
                return _lookup_intent("complete", match.group("title"))

        delete = _DELETE.match(text)
        if delete:
            subject = _clean_title(_TASK_PREFIX.sub("", delete.group("title")))
            if _UUID.match(subject):
                return Intent(calls=[(ToolName.DELETE_TASK, {"id": subject})])
            return _lookup_intent("delete", subject)

        if _TIME.search(text):
            return Intent(calls=[(ToolName.GET_TIME, {"format": "full"})])

        if _LIST_NOUN.search(text) and (_LIST_VERB.search(text) or text.strip().lower().startswith("my ")):
            return Intent(calls=[(ToolName.LIST_TASKS, _list_filters(text))])

        return Intent(reply=HELP_TEXT)

    def _create_intent(self, match: re.Match[str]) -> Intent:
        body = _clean_title(match.group("body"))
        args: dict[str, Any] = {}
        due = _DUE_SUFFIX.match(body)
        if due:
            body = _clean_title(due.group("title"))
            args["dueDate"] = self._due_date(due.group("due").lower())
        if not body:
            return Intent(reply="What should the task be called?")
        args = {"title": body, **args}
        priority = match.groupdict().get("priority")
        if priority:
            args["priority"] = priority.split()[0].split("-")[0].upper()
        return Intent(calls=[(ToolName.CREATE_TASK, args)])

    def _due_date(self, word: str) -> str:
        local = self.clock().astimezone(self.tz)
        if word == "tomorrow":
            local += timedelta(days=1)
        due = local.replace(hour=self.due_hour, minute=0, second=0, microsecond=0)
        return due.astimezone(UTC).isoformat().replace("+00:00", "Z")

    def _follow_up(self, intent: Intent, lookup: dict[str, Any]) -> Iterator[ModelChunk]:
        subject = intent.subject or ""
        if not lookup.get("success"):
            yield from _text(f"Sorry, I couldn't look that up: {lookup.get('message')}")
            return
        tasks = (lookup.get("data") or {}).get("tasks") or []
        exact = [task for task in tasks if task.get("title", "").casefold() == subject.casefold()]
        candidates = exact or tasks
        if intent.follow_up == "complete":
            candidates = [task for task in candidates if not task.get("done")] or candidates

        if not candidates:
            yield from _text(f'I couldn\'t find a task matching "{subject}".')
            return
        if len(candidates) > 1:
            titles = ", ".join(f'"{task.get("title")}"' for task in candidates[:5])
            yield from _text(
                f'I found {len(candidates)} tasks matching "{subject}": {titles}. Which one did you mean?'
            )
            return

        task_id = candidates[0]["id"]
        if intent.follow_up == "complete":
            yield ToolInvocation(
                id=_call_id(), name=ToolName.UPDATE_TASK.value, args={"id": task_id, "done": True}
            )
        else:
            yield ToolInvocation(id=_call_id(), name=ToolName.DELETE_TASK.value, args={"id": task_id})


def summarize(names: list[str], results: list[dict[str, Any]]) -> str:
    lines = [_summarize_one(name, result) for name, result in zip(names, results)]
    return "\n".join(line for line in lines if line)


def _summarize_one(name: str, result: dict[str, Any]) -> str:
    message = result.get("message") or ""
    if not result.get("success"):
        return f"Sorry, that didn't work: {message}"
    data = result.get("data") or {}

    if name == ToolName.CREATE_TASK.value:
        task = data.get("task") or {}
        return f'Done! I added "{task.get("title")}" to your tasks.'
    if name == ToolName.LIST_TASKS.value:
        tasks = data.get("tasks") or []
        if not tasks:
            return "You don't have any tasks matching that."
        rows = [
            f"- [{'x' if task.get('done') else ' '}] {task.get('title')} ({task.get('priority')})"
            for task in tasks
        ]
        return f"Here are your tasks ({len(tasks)}):\n" + "\n".join(rows)
    if name == ToolName.UPDATE_TASK.value:
        task = data.get("task") or {}
        if task.get("done"):
            return f'Marked "{task.get("title")}" as done.'
        return f'Updated "{task.get("title")}".'
    if name == ToolName.DELETE_TASK.value:
        return "Deleted the task."
    if name == ToolName.GET_TIME.value:
        return f"It's {data.get('formatted') or message}."
    return message


def _lookup_intent(action: str, raw_title: str) -> Intent:
    subject = _clean_title(_TASK_PREFIX.sub("", raw_title))
    if not subject:
        return Intent(reply="Which task do you mean?")
    return Intent(
        calls=[(ToolName.LIST_TASKS, {"q": subject})],
        follow_up=action,
        subject=subject,
    )


def _list_filters(text: str) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    priority = _PRIORITY_WORD.search(text)
    if priority:
        filters["priority"] = priority.group(1).upper()
    if _OPEN_WORDS.search(text):
        filters["done"] = False
    elif _DONE_WORDS.search(text):
        filters["done"] = True
    search = _SEARCH.search(text)
    if search:
        filters["q"] = search.group("q").strip()
    return filters


def _latest_round(
    messages: Sequence[dict[str, Any]],
) -> tuple[list[str], list[dict[str, Any]]] | None:
    """Tool names and parsed results of the last assistant tool round, if any."""
    assistant_index = _last_index(messages, "assistant")
    if assistant_index is None:
        return None
    calls = messages[assistant_index].get("tool_calls") or []
    if not calls:
        return None
    by_id = {
        message.get("tool_call_id"): _parse_content(message.get("content"))
        for message in messages[assistant_index + 1 :]
        if message.get("role") == "tool"
    }
    names = [call["function"]["name"] for call in calls]
    results = [by_id.get(call["id"], {}) for call in calls]
    return names, results


def _last_index(messages: Sequence[dict[str, Any]], role: str) -> int | None:
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].get("role") == role:
            return index
    return None


def _parse_content(content: Any) -> dict[str, Any]:
    if isinstance(content, dict):
        return content
    try:
        parsed = json.loads(content or "{}")
    except (TypeError, json.JSONDecodeError):
        return {"success": False, "message": str(content)}
    return parsed if isinstance(parsed, dict) else {}


def _clean_title(value: str) -> str:
    return value.strip().strip(_QUOTES).strip()


def _call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


def _text(value: str) -> Iterator[TextDelta]:
    for chunk in re.findall(r"\S+\s*|\s+", value):
        yield TextDelta(chunk)
