import threading
import time

import pytest

from task_assistant.agent import AgentLoop, Conversation, RuleBasedChatModel, Transcript
from task_assistant.agent.events import user_message
from task_assistant.agent.llm import TextDelta, ToolInvocation
from task_assistant.errors import ConversationBusyError
from task_assistant.services import TaskService
from task_assistant.tools import ToolExecutor, build_registry
from task_assistant.tools.registry import ToolName, ToolSpec
from task_assistant.tools.schemas import DeleteTaskToolInput, GetTimeToolInput, ToolResult
from tests.fakes import (
    FROZEN_NOW,
    AlwaysToolChatModel,
    BlockingChatModel,
    FailingChatModel,
    ScriptedChatModel,
)


def _loop(service: TaskService, model, *, max_steps: int = 20) -> AgentLoop:
    registry = build_registry(service, clock=lambda: FROZEN_NOW)
    return AgentLoop(
        model=model,
        executor=ToolExecutor(registry=registry, tool_timeout_s=2.0),
        registry=registry,
        max_steps=max_steps,
    )


def _history(text: str) -> Transcript:
    return Transcript([user_message(text)])


def test_buy_milk_scenario_creates_task_and_streams_events(service: TaskService) -> None:
    loop = _loop(service, RuleBasedChatModel(clock=lambda: FROZEN_NOW))

    run = loop.run(_history("create a task called Buy milk"))
    events = list(run)

    types = [event.type for event in events]
    assert types[0] == "tool_call"
    assert types[1] == "tool_result"
    assert set(types[2:-1]) == {"text_delta"}
    assert types[-1] == "done"
    assert events[-1].outcome == "completed"

    call, result = events[0], events[1]
    assert call.tool == "createTask"
    assert call.args == {"title": "Buy milk"}
    assert result.call_id == call.call_id
    assert result.result["success"] is True
    assert result.result["data"]["task"]["title"] == "Buy milk"
    assert result.widget == "task-card"

    tasks = service.list_tasks()
    assert [task.title for task in tasks] == ["Buy milk"]
    assert "Buy milk" in run.transcript.final_text()


def test_tool_results_follow_call_order_not_completion_order(service: TaskService) -> None:
    def slow(_: GetTimeToolInput) -> ToolResult:
        threading.Event().wait(0.2)
        return ToolResult.ok("slow")

    def fast(_: DeleteTaskToolInput) -> ToolResult:
        return ToolResult.ok("fast")

    registry = {
        ToolName.GET_TIME: ToolSpec(ToolName.GET_TIME, "time", GetTimeToolInput, slow),
        ToolName.DELETE_TASK: ToolSpec(ToolName.DELETE_TASK, "delete", DeleteTaskToolInput, fast),
    }
    model = ScriptedChatModel(
        [
            [
                ToolInvocation(id="first", name="getTime", args={}),
                ToolInvocation(id="second", name="deleteTask", args={"id": "t1"}),
            ]
        ]
    )
    loop = AgentLoop(model=model, executor=ToolExecutor(registry=registry), registry=registry)

    run = loop.run(_history("go"))
    results = [event for event in run if event.type == "tool_result"]

    assert [event.call_id for event in results] == ["first", "second"]
    assert [event.result["message"] for event in results] == ["slow", "fast"]
    tool_messages = [message for message in run.messages if message["role"] == "tool"]
    assert [message["tool_call_id"] for message in tool_messages] == ["first", "second"]


def test_step_ceiling_stops_after_max_model_calls(service: TaskService) -> None:
    model = AlwaysToolChatModel()
    loop = _loop(service, model, max_steps=20)

    run = loop.run(_history("what time is it, forever"))
    events = list(run)

    assert model.calls == 20
    assert run.outcome == "step_limit"
    assert [event.type for event in events].count("tool_result") == 20
    assert events[-2].type == "step_limit"
    assert events[-1].type == "done"
    assert events[-1].outcome == "step_limit"


def test_model_failure_becomes_error_event(service: TaskService) -> None:
    run = _loop(service, FailingChatModel("upstream unavailable")).run(_history("hi"))
    events = list(run)

    assert [event.type for event in events] == ["text_delta", "error", "done"]
    assert "upstream unavailable" in events[1].text
    assert run.outcome == "error"


def test_invalid_tool_arguments_are_reported_to_the_model(service: TaskService) -> None:
    model = ScriptedChatModel([[ToolInvocation(id="c1", name="createTask", args={"name": "x"})]])
    run = _loop(service, model).run(_history("make something"))
    events = list(run)

    result = next(event for event in events if event.type == "tool_result")
    assert result.result["success"] is False
    assert result.result["errorKind"] == "ValidationError"
    assert result.widget is None
    assert len(model.calls) == 2
    assert model.calls[1][-1]["role"] == "tool"
    assert service.list_tasks() == []


def test_abort_drops_result_of_in_flight_tool(service: TaskService) -> None:
    started = threading.Event()
    release = threading.Event()
    finished = threading.Event()

    def slow(_: GetTimeToolInput) -> ToolResult:
        started.set()
        release.wait(2)
        finished.set()
        return ToolResult.ok("late")

    registry = {ToolName.GET_TIME: ToolSpec(ToolName.GET_TIME, "time", GetTimeToolInput, slow)}
    model = ScriptedChatModel([[ToolInvocation(id="c1", name="getTime", args={})]])
    loop = AgentLoop(
        model=model,
        executor=ToolExecutor(registry=registry, tool_timeout_s=5.0),
        registry=registry,
    )

    run = loop.run(_history("time please"))
    seen = []
    for event in run:
        seen.append(event.type)
        if event.type == "tool_call":
            assert started.wait(2)
            run.abort()
            release.set()

    assert run.wait(5)
    assert finished.is_set()
    assert run.outcome == "aborted"
    assert seen == ["tool_call"]
    assert all(event.type != "tool_result" for event in run.transcript)
    assert len(model.calls) == 1


def test_conversation_is_single_flow(service: TaskService) -> None:
    model = BlockingChatModel()
    conversation = Conversation(_loop(service, model))

    first = conversation.send("hello")
    assert model.started.wait(2)
    with pytest.raises(ConversationBusyError):
        conversation.send("are you there?")

    model.release.set()
    assert [event.type for event in first][-1] == "done"
    assert first.wait(2)
    assert conversation.busy is False


def test_transcript_folds_into_chat_history(service: TaskService) -> None:
    conversation = Conversation(_loop(service, RuleBasedChatModel(clock=lambda: FROZEN_NOW)))

    list(conversation.send("create a task called Buy milk"))
    list(conversation.send("show my tasks"))
    messages = conversation.transcript.to_messages()

    assert [message["role"] for message in messages] == [
        "user",
        "assistant",
        "tool",
        "assistant",
        "user",
        "assistant",
        "tool",
        "assistant",
    ]
    assert messages[1]["tool_calls"][0]["function"]["name"] == "createTask"
    assert messages[1]["content"] is None
    assert "Buy milk" in messages[-1]["content"]


def test_text_only_turn_finishes_after_one_call(service: TaskService) -> None:
    model = ScriptedChatModel([[TextDelta("Hello"), TextDelta(" there")]])

    run = _loop(service, model).run(_history("hi"))
    events = list(run)

    assert [event.text for event in events if event.type == "text_delta"] == ["Hello", " there"]
    assert len(model.calls) == 1
    assert run.outcome == "completed"


class _TricklingChatModel:
    def stream(self, *, messages, tools, system):
        while True:
            time.sleep(0.02)
            yield TextDelta(".")


def test_slow_model_stream_hits_response_deadline(service: TaskService) -> None:
    registry = build_registry(service, clock=lambda: FROZEN_NOW)
    loop = AgentLoop(
        model=_TricklingChatModel(),
        executor=ToolExecutor(registry=registry),
        registry=registry,
        response_timeout_s=0.2,
    )

    run = loop.run(_history("hi"))
    events = list(run)

    error = next(event for event in events if event.type == "error")
    assert error.kind == "Timeout"
    assert "timed out after 0.2s" in error.text
    assert events[-1].type == "done"
    assert run.outcome == "error"
