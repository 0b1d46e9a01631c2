"""Inbound webhook handling: signature check, sender allow-list, sanitization, media."""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from urllib import error, request
from urllib.parse import urlparse

import jwt

from assistant_orchestrator.errors import InboundValidationError, MediaError
from assistant_orchestrator.messaging.models import (
    MEDIA_TYPES,
    InboundMessage,
    InboundWebhookPayload,
)

logger = logging.getLogger(__name__)

# Only real tag starts; a bare "<" in prose ("3 < 5") is kept.
_TAG = re.compile(r"<(?=[A-Za-z/!])[^>]*>")
_WHITESPACE = re.compile(r"\s+")


def verify_signature(authorization: str | None, body: bytes, secret: str) -> dict:
    """Validate the HS256-signed bearer token the messaging provider attaches to webhooks."""
    if not secret:
        raise InboundValidationError("Webhook signature secret is not configured")
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InboundValidationError("No signature")
    try:
        claims = jwt.decode(token.strip(), secret, algorithms=["HS256"])
    except jwt.InvalidTokenError as exc:
        raise InboundValidationError(f"Invalid signature: {exc}") from exc

    expected_hash = claims.get("payload_hash")
    if expected_hash and expected_hash != hashlib.sha256(body).hexdigest():
        raise InboundValidationError("Payload hash does not match signature")
    return claims


def sanitize_text(text: str) -> str:
    """Drop markup tags and collapse whitespace; entity text is left as written."""
    sanitized = _TAG.sub("", text)
    return _WHITESPACE.sub(" ", sanitized).strip()


def parse_inbound(payload: InboundWebhookPayload, *, allowed_sender: str) -> InboundMessage:
    if allowed_sender and payload.sender != allowed_sender:
        logger.warning("inbound event=unauthorized sender=%s", payload.sender)
        raise InboundValidationError(
            f"Unauthorized sender {payload.sender}", user_message="⚠️ Unauthorized"
        )

    if payload.message_type == "text":
        content = sanitize_text(payload.text or "")
        if not content:
            raise InboundValidationError("Empty text message", user_message="⚠️ Empty message")
        return InboundMessage(
            message_id=payload.message_uuid,
            timestamp=payload.timestamp,
            sender=payload.sender,
            type="text",
            content=content,
        )

    if payload.message_type in MEDIA_TYPES:
        reference = payload.media_reference()
        if reference is None:
            raise InboundValidationError(f"Missing {payload.message_type} reference")
        return InboundMessage(
            message_id=payload.message_uuid,
            timestamp=payload.timestamp,
            sender=payload.sender,
            type=payload.message_type,
            extension=_extension(reference.name or urlparse(reference.url).path),
            media_url=reference.url,
        )

    raise InboundValidationError(
        f"Unsupported message type {payload.message_type}",
        user_message="⚠️ Message type not supported",
    )


class MediaFetcher:
    """Download media from the provider's host and optionally keep a local copy."""

    def __init__(
        self,
        *,
        allowed_host_suffix: str = ".nexmo.com",
        media_dir: str = "",
        timeout_s: float = 15.0,
    ) -> None:
        self.allowed_host_suffix = allowed_host_suffix
        self.media_dir = Path(media_dir) if media_dir else None
        self.timeout_s = timeout_s

    def fetch(self, message: InboundMessage) -> InboundMessage:
        if not message.is_media or message.media_data is not None:
            return message
        url = message.media_url or ""
        host = urlparse(url).hostname or ""
        if not host.endswith(self.allowed_host_suffix):
            raise MediaError(f"Untrusted media URL host: {host or url}")

        data = self._download(url)
        if self.media_dir is not None:
            try:
                self.media_dir.mkdir(parents=True, exist_ok=True)
                (self.media_dir / message.attachment_name()).write_bytes(data)
            except OSError as exc:
                raise MediaError(f"Failed to store media: {exc}") from exc
        return message.model_copy(update={"media_data": data})

    def _download(self, url: str) -> bytes:
        try:
            with request.urlopen(url, timeout=self.timeout_s) as response:
                return response.read()
        except (error.URLError, TimeoutError, ConnectionError) as exc:
            raise MediaError(f"Media download failed: {exc}") from exc


def _extension(name: str) -> str | None:
    suffix = Path(name).suffix.lstrip(".").lower()
    return suffix or None
