"""Conversation session, model adapters and prompt rendering."""

from assistant_orchestrator.session.chat import ChatSession, validate_history
from assistant_orchestrator.session.models import (
    Final,
    MediaPayload,
    ModelResponse,
    Outcome,
    PendingTools,
    ToolCall,
    UserContent,
)
from assistant_orchestrator.session.prompts import PromptRenderer
from assistant_orchestrator.session.provider import ChatModel, OpenAIChatModel

__all__ = [
    "ChatModel",
    "ChatSession",
    "Final",
    "MediaPayload",
    "ModelResponse",
    "OpenAIChatModel",
    "Outcome",
    "PendingTools",
    "PromptRenderer",
    "ToolCall",
    "UserContent",
    "validate_history",
]
