"""Turn content and model outcome types exchanged with a chat session."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class MediaPayload:
    """Binary user content (audio, image or document) with its MIME type."""

    mime_type: str
    data: bytes
    filename: str | None = None

    @property
    def kind(self) -> str:
        return self.mime_type.split("/", 1)[0]


@dataclass(frozen=True)
class ToolCall:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str = ""


@dataclass(frozen=True)
class Final:
    text: str


@dataclass(frozen=True)
class PendingTools:
    calls: tuple[ToolCall, ...]


Outcome = Union[Final, PendingTools]
UserContent = Union[str, MediaPayload]


@dataclass(frozen=True)
class ModelResponse:
    """Provider-neutral completion result."""

    text: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    usage: dict[str, Any] | None = None
