"""Single-flow conversation session on top of the agent loop."""

from __future__ import annotations

import threading

from task_assistant.agent.events import Transcript, user_message
from task_assistant.agent.loop import AgentLoop, AgentRun
from task_assistant.errors import ConversationBusyError, ValidationError


class Conversation:
    """Holds one session's transcript; only one turn may run at a time."""

    def __init__(self, loop: AgentLoop, transcript: Transcript | None = None) -> None:
        self.loop = loop
        self.transcript = transcript or Transcript()
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def send(self, text: str, *, abort: threading.Event | None = None) -> AgentRun:
        if not text or not text.strip():
            raise ValidationError("Message must not be empty")
        if not self._busy.acquire(blocking=False):
            raise ConversationBusyError()
        try:
            self.transcript.append(user_message(text.strip()))
            return self.loop.run(self.transcript, abort=abort, on_finish=self._release)
        except BaseException:
            self._busy.release()
            raise

    def _release(self, _run: AgentRun) -> None:
        self._busy.release()
