"""Inbound webhook payloads and the normalized message handed to the service."""

from __future__ import annotations

import mimetypes
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from assistant_orchestrator.session.models import MediaPayload, UserContent

MessageType = Literal["text", "audio", "image", "file"]
MEDIA_TYPES = ("audio", "image", "file")


class MediaReference(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str
    name: str | None = None


class InboundWebhookPayload(BaseModel):
    """Vonage Messages API inbound webhook body (fields used here)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    message_uuid: str
    timestamp: datetime
    sender: str = Field(alias="from")
    message_type: str
    channel: str | None = None
    text: str | None = None
    audio: MediaReference | None = None
    image: MediaReference | None = None
    file: MediaReference | None = None

    def media_reference(self) -> MediaReference | None:
        if self.message_type not in MEDIA_TYPES:
            return None
        return getattr(self, self.message_type)


class InboundMessage(BaseModel):
    """Validated, sanitized message ready for an orchestration cycle."""

    message_id: str
    timestamp: datetime
    sender: str
    type: MessageType
    content: str = ""
    extension: str | None = None
    media_url: str | None = None
    media_data: bytes | None = None

    @property
    def is_media(self) -> bool:
        return self.type != "text"

    def mime_type(self) -> str:
        if not self.extension:
            return "application/octet-stream"
        guessed, _ = mimetypes.guess_type(f"attachment.{self.extension}")
        if guessed:
            return guessed
        family = "application" if self.type == "file" else self.type
        return f"{family}/{self.extension}"

    def user_content(self) -> UserContent:
        if not self.is_media:
            return self.content
        if self.media_data is None:
            raise ValueError(f"Media for message {self.message_id} has not been downloaded")
        return MediaPayload(
            mime_type=self.mime_type(),
            data=self.media_data,
            filename=self.attachment_name(),
        )

    def attachment_name(self) -> str:
        suffix = f".{self.extension}" if self.extension else ""
        return f"{self.message_id}{suffix}"

    def stored_content(self) -> str:
        """Text persisted for the user turn; media bytes are never stored."""
        if not self.is_media:
            return self.content
        return f"[{self.type}: {self.attachment_name()}]"
