"""Typed state contract for the tool-calling cycle graph."""

from typing import Any, TypedDict

from assistant_orchestrator.session.chat import ChatSession
from assistant_orchestrator.session.models import Outcome, UserContent


class CycleState(TypedDict, total=False):
    session: ChatSession
    user_content: UserContent
    outcome: Outcome
    rounds: int
    task_status: str | None
    tool_events: list[dict[str, Any]]
    final_text: str


def initial_state(session: ChatSession, user_content: UserContent) -> CycleState:
    return {
        "session": session,
        "user_content": user_content,
        "rounds": 0,
        "task_status": None,
        "tool_events": [],
    }
