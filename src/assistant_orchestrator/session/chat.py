"""Conversation session scoped to one orchestration cycle.

The session owns the rendered system instructions, a read-only snapshot of the
task history and the exchange log of the current cycle. Messages are kept in
chat-completions shape: ``user``/``assistant``/``tool`` roles, with stored
``model`` turns mapped to ``assistant``.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Sequence

from assistant_orchestrator.errors import ModelCallError
from assistant_orchestrator.session.models import (
    Final,
    MediaPayload,
    ModelResponse,
    Outcome,
    PendingTools,
    ToolCall,
    UserContent,
)
from assistant_orchestrator.session.provider import ChatModel
from assistant_orchestrator.storage.models import HistoryEntry
from assistant_orchestrator.tools.registry import ToolDefinition
from assistant_orchestrator.tools.schemas import ToolResult

logger = logging.getLogger(__name__)

ROLE_MAP = {"user": "user", "model": "assistant"}


class ChatSession:
    def __init__(
        self,
        *,
        model: ChatModel,
        system_instructions: str,
        history: Sequence[HistoryEntry],
        tools: Sequence[ToolDefinition] = (),
    ) -> None:
        self._model = model
        self.system_instructions = system_instructions
        self.history: tuple[HistoryEntry, ...] = tuple(history)
        self.tools = list(tools)
        self.exchange: list[dict[str, Any]] = []
        self.model_calls = 0
        self._outstanding: list[ToolCall] = []

    @classmethod
    def create(
        cls,
        *,
        model: ChatModel,
        history: Sequence[HistoryEntry],
        system_instructions: str,
        tools: Sequence[ToolDefinition] = (),
    ) -> "ChatSession":
        problems = validate_history(history)
        if problems:
            logger.warning("session event=history_alternation problems=%s", problems)
        return cls(
            model=model,
            system_instructions=system_instructions,
            history=history,
            tools=tools,
        )

    @property
    def outstanding_calls(self) -> tuple[ToolCall, ...]:
        return tuple(self._outstanding)

    def send_user_turn(self, content: UserContent) -> Outcome:
        if self._outstanding:
            raise ModelCallError("Cannot send a user turn while tool calls are unanswered")
        self.exchange.append({"role": "user", "content": user_content_payload(content)})
        return self._complete()

    def send_tool_result(self, call: ToolCall, result: ToolResult) -> Outcome:
        """Answer one pending call; the model is only asked again once all are answered."""
        position = _find_call(self._outstanding, call)
        if position is None:
            raise ModelCallError(f"No pending call '{call.name}' to answer")
        answered = self._outstanding.pop(position)
        self.exchange.append(
            {
                "role": "tool",
                "tool_call_id": answered.call_id,
                "name": answered.name,
                "content": json.dumps(result.model_payload(), ensure_ascii=False),
            }
        )
        if self._outstanding:
            return PendingTools(calls=tuple(self._outstanding))
        return self._complete()

    def messages(self) -> list[dict[str, Any]]:
        rendered: list[dict[str, Any]] = [
            {"role": "system", "content": self.system_instructions}
        ]
        rendered.extend(
            {"role": ROLE_MAP[entry.role], "content": entry.content} for entry in self.history
        )
        rendered.extend(self.exchange)
        return rendered

    def _complete(self) -> Outcome:
        self.model_calls += 1
        response = self._model.complete(messages=self.messages(), tools=self.tools)
        return self._record(response)

    def _record(self, response: ModelResponse) -> Outcome:
        if response.tool_calls:
            calls = tuple(
                call if call.call_id else _with_call_id(call, index, self.model_calls)
                for index, call in enumerate(response.tool_calls)
            )
            self.exchange.append(
                {
                    "role": "assistant",
                    "content": response.text,
                    "tool_calls": [
                        {
                            "id": call.call_id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments, ensure_ascii=False),
                            },
                        }
                        for call in calls
                    ],
                }
            )
            self._outstanding = list(calls)
            return PendingTools(calls=calls)

        if not response.text:
            raise ModelCallError("Model returned an empty reply")
        self.exchange.append({"role": "assistant", "content": response.text})
        return Final(text=response.text)


def validate_history(history: Sequence[HistoryEntry]) -> list[str]:
    """Report positions where history breaks user/model alternation."""
    problems: list[str] = []
    if history and history[0].role != "user":
        problems.append("history must start with a user turn")
    for index in range(1, len(history)):
        if history[index].role == history[index - 1].role:
            problems.append(f"consecutive '{history[index].role}' turns at index {index}")
    return problems


def user_content_payload(content: UserContent) -> Any:
    if isinstance(content, str):
        return content
    if isinstance(content, MediaPayload):
        return [media_part(content)]
    raise TypeError(f"Unsupported user content: {type(content)!r}")


def media_part(media: MediaPayload) -> dict[str, Any]:
    encoded = base64.b64encode(media.data).decode("ascii")
    if media.kind == "image":
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{media.mime_type};base64,{encoded}"},
        }
    if media.kind == "audio":
        return {
            "type": "input_audio",
            "input_audio": {"data": encoded, "format": media.mime_type.split("/", 1)[-1]},
        }
    return {
        "type": "file",
        "file": {
            "filename": media.filename or "attachment",
            "file_data": f"data:{media.mime_type};base64,{encoded}",
        },
    }


def _find_call(outstanding: list[ToolCall], call: ToolCall) -> int | None:
    for index, pending in enumerate(outstanding):
        if call.call_id and pending.call_id == call.call_id:
            return index
    for index, pending in enumerate(outstanding):
        if pending.name == call.name and pending.arguments == call.arguments:
            return index
    return None


def _with_call_id(call: ToolCall, index: int, model_call: int) -> ToolCall:
    return ToolCall(
        name=call.name,
        arguments=call.arguments,
        call_id=f"call_{model_call}_{index}",
    )
