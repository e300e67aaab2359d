"""Agent loop: model round-trips, tool dispatch and transcript streaming."""

from task_assistant.agent.conversation import Conversation
from task_assistant.agent.deterministic import RuleBasedChatModel
from task_assistant.agent.events import Transcript, TranscriptEvent, events_from_messages
from task_assistant.agent.llm import ChatModel, OpenAIChatModel, TextDelta, ToolInvocation
from task_assistant.agent.loop import AgentLoop, AgentRun
from task_assistant.agent.models import ModelResolution, resolve_chat_model
from task_assistant.agent.state import AgentPhase

__all__ = [
    "AgentLoop",
    "AgentPhase",
    "AgentRun",
    "ChatModel",
    "Conversation",
    "ModelResolution",
    "OpenAIChatModel",
    "RuleBasedChatModel",
    "TextDelta",
    "ToolInvocation",
    "Transcript",
    "TranscriptEvent",
    "events_from_messages",
    "resolve_chat_model",
]
