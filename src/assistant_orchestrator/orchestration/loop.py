"""Tool-calling orchestration loop assembled as a LangGraph workflow.

States: the model is asked (``send_user_turn``), then either answers
(``finalize``) or requests tools (``execute_tools``), whose results are fed back
to the model until it answers. ``max_tool_rounds`` bounds the number of tool
rounds; exceeding it raises ``LoopExceededError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from langgraph.graph import END, StateGraph

from assistant_orchestrator.errors import LoopExceededError, UnknownToolError
from assistant_orchestrator.orchestration.state import CycleState, initial_state
from assistant_orchestrator.session.chat import ChatSession
from assistant_orchestrator.session.models import PendingTools, UserContent
from assistant_orchestrator.session.prompts import PromptRenderer
from assistant_orchestrator.session.provider import ChatModel
from assistant_orchestrator.storage.models import HistoryEntry
from assistant_orchestrator.tools.registry import ToolInvoker
from assistant_orchestrator.tools.schemas import ToolResult
from assistant_orchestrator.tracing import TracedChatModel, TracedToolInvoker, Tracer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleResult:
    text: str
    task_status: str | None = None
    rounds: int = 0
    tool_events: list[dict[str, Any]] = field(default_factory=list)


def build_cycle_graph(*, registry: ToolInvoker, max_tool_rounds: int = 8):
    def _send_user_turn(state: CycleState) -> CycleState:
        session = state["session"]
        return {"outcome": session.send_user_turn(state["user_content"])}

    def _execute_tools(state: CycleState) -> CycleState:
        rounds = int(state.get("rounds", 0))
        if rounds >= max_tool_rounds:
            raise LoopExceededError(max_tool_rounds)

        session = state["session"]
        outcome = state["outcome"]
        task_status = state.get("task_status")
        events = list(state.get("tool_events", []))

        # Every call of the round is answered in array order; the outcome of the
        # last answer is what the model decided next.
        for call in outcome.calls:
            result = _invoke(registry, call.name, call.arguments)
            if result.task_status:
                task_status = result.task_status
            events.append(
                {
                    "round": rounds + 1,
                    "tool": call.name,
                    "success": result.success,
                    "task_status": result.task_status,
                }
            )
            outcome = session.send_tool_result(call, result)

        return {
            "outcome": outcome,
            "rounds": rounds + 1,
            "task_status": task_status,
            "tool_events": events,
        }

    def _finalize(state: CycleState) -> CycleState:
        outcome = state["outcome"]
        return {"final_text": outcome.text}

    def _next_step(state: CycleState) -> str:
        if isinstance(state.get("outcome"), PendingTools):
            return "tools"
        return "final"

    graph = StateGraph(CycleState)

    graph.add_node("send_user_turn", _send_user_turn)
    graph.add_node("execute_tools", _execute_tools)
    graph.add_node("finalize", _finalize)

    graph.set_entry_point("send_user_turn")
    graph.add_conditional_edges(
        "send_user_turn", _next_step, {"tools": "execute_tools", "final": "finalize"}
    )
    graph.add_conditional_edges(
        "execute_tools", _next_step, {"tools": "execute_tools", "final": "finalize"}
    )
    graph.add_edge("finalize", END)

    return graph.compile()


class OrchestrationLoop:
    """Run one cycle: user turn in, final reply plus any tool-emitted task status out."""

    def __init__(
        self,
        *,
        model: ChatModel,
        registry: ToolInvoker,
        prompts: PromptRenderer,
        max_tool_rounds: int = 8,
        tracer: Tracer | None = None,
    ) -> None:
        if max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be at least 1")
        if tracer is not None:
            model = TracedChatModel(model, tracer)
            registry = TracedToolInvoker(registry, tracer)
        self.model = model
        self.registry = registry
        self.prompts = prompts
        self.max_tool_rounds = max_tool_rounds
        self._graph = build_cycle_graph(registry=registry, max_tool_rounds=max_tool_rounds)

    def run(
        self,
        *,
        history: Sequence[HistoryEntry],
        content: UserContent,
        now: datetime,
    ) -> CycleResult:
        session = ChatSession.create(
            model=self.model,
            history=history,
            system_instructions=self.prompts.render(now),
            tools=self.registry.list_tools(),
        )
        result = self._graph.invoke(
            initial_state(session, content),
            # One graph step per tool round plus entry/exit nodes.
            config={"recursion_limit": self.max_tool_rounds + 5},
        )
        cycle = CycleResult(
            text=result["final_text"],
            task_status=result.get("task_status"),
            rounds=int(result.get("rounds", 0)),
            tool_events=list(result.get("tool_events", [])),
        )
        logger.info(
            "cycle event=completed rounds=%d model_calls=%d task_status=%s",
            cycle.rounds,
            session.model_calls,
            cycle.task_status,
        )
        return cycle


def _invoke(registry: ToolInvoker, name: str, arguments: dict[str, Any]) -> ToolResult:
    try:
        return registry.invoke(name, arguments)
    except UnknownToolError as exc:
        logger.warning("cycle event=unknown_tool tool=%s", exc.tool_name)
        return ToolResult.failure(name, str(exc))
