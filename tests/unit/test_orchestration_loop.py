from datetime import UTC, datetime

import pytest

from assistant_orchestrator.errors import LoopExceededError, ModelCallError
from assistant_orchestrator.storage.models import HistoryEntry
from assistant_orchestrator.tools.registry import ToolRegistry, ToolSpec
from assistant_orchestrator.tools.schemas import SummarizeInput, ToolResult
from assistant_orchestrator.tracing import RecordingTracer

NOW = datetime(2026, 10, 18, 22, 0, tzinfo=UTC)

EVENT_ARGS = {
    "title": "Team sync",
    "start": "2026-10-19T15:00:00",
    "end": "2026-10-19T16:00:00",
    "timeZone": "America/Los_Angeles",
}


def test_immediate_final_reply_uses_one_model_call(scripted_model, make_loop) -> None:
    model = scripted_model(["X"])
    history = [
        HistoryEntry(role="user", content="hi"),
        HistoryEntry(role="model", content="hello"),
    ]

    result = make_loop(model).run(history=history, content="what's up?", now=NOW)

    assert result.text == "X"
    assert result.task_status is None
    assert result.rounds == 0
    assert len(model.calls) == 1


def test_history_and_instructions_reach_the_model(scripted_model, make_loop) -> None:
    model = scripted_model(["ok"])
    history = [
        HistoryEntry(role="user", content="first"),
        HistoryEntry(role="model", content="reply"),
    ]

    make_loop(model).run(history=history, content="second", now=NOW)

    messages = model.calls[0]["messages"]
    assert messages[0]["role"] == "system"
    assert "October 18, 2026" in messages[0]["content"]
    assert [item["role"] for item in messages[1:]] == ["user", "assistant", "user"]
    assert messages[-1]["content"] == "second"
    tool_names = [tool.name for tool in model.calls[0]["tools"]]
    assert tool_names == ["create_calendar_event", "summarize", "complete_task"]


def test_single_tool_round_then_final(scripted_model, make_loop) -> None:
    model = scripted_model([{"tool": "create_calendar_event", "args": EVENT_ARGS}, "Y"])

    result = make_loop(model).run(history=[], content="book it", now=NOW)

    assert result.text == "Y"
    assert result.task_status is None
    assert result.rounds == 1
    assert [event["tool"] for event in result.tool_events] == ["create_calendar_event"]
    assert result.tool_events[0]["success"] is True
    assert len(model.calls) == 2
    tool_message = model.calls[1]["messages"][-1]
    assert tool_message["role"] == "tool"
    assert '"success": true' in tool_message["content"]


def test_complete_task_status_is_propagated(scripted_model, make_loop) -> None:
    model = scripted_model(
        [{"tool": "complete_task", "args": {"taskStatus": "success"}}, "Done, closing this."]
    )

    result = make_loop(model).run(history=[], content="that's all", now=NOW)

    assert result.text == "Done, closing this."
    assert result.task_status == "success"


def test_last_non_empty_task_status_wins_across_rounds(scripted_model, make_loop) -> None:
    model = scripted_model(
        [
            {"tool": "complete_task", "args": {"taskStatus": "success"}},
            {"tool": "summarize", "args": {"summary": "Short recap"}},
            "Recap sent.",
        ]
    )

    result = make_loop(model).run(history=[], content="wrap up", now=NOW)

    assert result.task_status == "success"
    assert result.rounds == 2


def test_unknown_tool_is_fed_back_instead_of_raising(scripted_model, make_loop) -> None:
    model = scripted_model([{"tool": "book_flight", "args": {"to": "SFO"}}, "Sorry, I can't do that."])

    result = make_loop(model).run(history=[], content="book a flight", now=NOW)

    assert result.text == "Sorry, I can't do that."
    assert result.tool_events[0]["success"] is False
    tool_message = model.calls[1]["messages"][-1]
    assert "Error calling tool book_flight" in tool_message["content"]


def test_failing_handler_degrades_to_tool_result(scripted_model, make_loop) -> None:
    def broken(_: SummarizeInput) -> ToolResult:
        raise RuntimeError("boom")

    registry = ToolRegistry(
        [ToolSpec(name="summarize", description="d", input_model=SummarizeInput, fn=broken)]
    )
    model = scripted_model([{"tool": "summarize", "args": {"summary": "x"}}, "Could not summarize."])

    result = make_loop(model, registry=registry).run(history=[], content="sum up", now=NOW)

    assert result.text == "Could not summarize."
    assert result.tool_events == [
        {"round": 1, "tool": "summarize", "success": False, "task_status": None}
    ]


def test_perpetual_tool_requests_hit_the_round_limit(scripted_model, make_loop) -> None:
    model = scripted_model(
        [{"tool": "summarize", "args": {"summary": "again"}}],
        repeat_last=True,
    )

    with pytest.raises(LoopExceededError) as exc_info:
        make_loop(model, max_tool_rounds=3).run(history=[], content="loop", now=NOW)

    assert exc_info.value.max_rounds == 3
    # Initial turn plus one model call per executed round.
    assert len(model.calls) == 4


def test_all_calls_of_a_round_are_processed_in_order(scripted_model, make_loop) -> None:
    model = scripted_model(
        [
            [
                {"tool": "summarize", "args": {"summary": "one"}},
                {"tool": "complete_task", "args": {"taskStatus": "success"}},
            ],
            "Both done.",
        ]
    )

    result = make_loop(model).run(history=[], content="do both", now=NOW)

    assert result.text == "Both done."
    assert [event["tool"] for event in result.tool_events] == ["summarize", "complete_task"]
    assert result.task_status == "success"
    assert result.rounds == 1
    # The model is asked again only after every call of the round is answered.
    assert len(model.calls) == 2
    roles = [item["role"] for item in model.calls[1]["messages"][-3:]]
    assert roles == ["assistant", "tool", "tool"]


def test_model_errors_propagate(scripted_model, make_loop) -> None:
    model = scripted_model([ModelCallError("quota exceeded")])

    with pytest.raises(ModelCallError):
        make_loop(model).run(history=[], content="hi", now=NOW)


def test_tracer_records_model_and_tool_spans(scripted_model, make_loop) -> None:
    tracer = RecordingTracer()
    model = scripted_model([{"tool": "summarize", "args": {"summary": "x"}}, "done"])

    make_loop(model, tracer=tracer).run(history=[], content="hi", now=NOW)

    assert [span.name for span in tracer.spans] == ["model_call", "tool_call", "model_call"]
    assert tracer.spans[1].attributes["tool"] == "summarize"
    assert tracer.spans[2].attributes["usage"] == {"total_tokens": 10}
