"""Error taxonomy shared by the store, tools, session, loop and service layers.

Every error carries a short ``user_message`` that is safe to send back to the
chat user. Technical detail stays in ``str(exc)`` and in the logs.
"""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for errors that map to a user-facing reply."""

    default_user_message = "❌ Unknown error"

    def __init__(self, message: str = "", *, user_message: str | None = None) -> None:
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class InboundValidationError(AssistantError):
    """Inbound payload rejected before reaching the orchestration loop."""

    default_user_message = "⚠️ Invalid message"


class MediaError(AssistantError):
    default_user_message = "❌ Media processing error"


class StorageError(AssistantError):
    default_user_message = "❌ Database error"


class ModelCallError(AssistantError):
    default_user_message = "❌ LLM call error"


class UnknownToolError(AssistantError):
    default_user_message = "❌ Tool error"

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolExecutionError(AssistantError):
    default_user_message = "❌ Tool error"

    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(f"Tool '{tool_name}' failed: {reason}")
        self.tool_name = tool_name
        self.reason = reason


class LoopExceededError(AssistantError):
    default_user_message = "❌ Too many tool calls, please try again"

    def __init__(self, max_rounds: int) -> None:
        super().__init__(f"Tool-call round limit exceeded (max_rounds={max_rounds})")
        self.max_rounds = max_rounds


class DeliveryError(AssistantError):
    default_user_message = "❌ Message sending error"


# Shorthand used at the HTTP boundary.
ValidationError = InboundValidationError
