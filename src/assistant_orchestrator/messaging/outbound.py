"""Outbound reply delivery."""

from __future__ import annotations

import base64
import json
import logging
from typing import Protocol
from urllib import error, request

from assistant_orchestrator.errors import DeliveryError

logger = logging.getLogger(__name__)


class MessageSender(Protocol):
    def send(self, text: str) -> None: ...


class LoggingMessageSender:
    """Log replies instead of delivering them (no provider credentials configured)."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    def send(self, text: str) -> None:
        self.sent.append(text)
        logger.info("outbound event=logged text=%r", text)


class VonageMessageSender:
    """Send WhatsApp text replies through the Vonage Messages API."""

    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        from_number: str,
        to_number: str,
        api_host: str = "https://messages-sandbox.nexmo.com",
        timeout_s: float = 10.0,
    ) -> None:
        self.from_number = from_number
        self.to_number = to_number
        self.url = f"{api_host.rstrip('/')}/v1/messages"
        self.timeout_s = timeout_s
        credentials = f"{api_key}:{api_secret}".encode("utf-8")
        self._authorization = f"Basic {base64.b64encode(credentials).decode('ascii')}"

    def send(self, text: str) -> None:
        body = {
            "from": self.from_number,
            "to": self.to_number,
            "channel": "whatsapp",
            "message_type": "text",
            "text": text,
        }
        req = request.Request(
            url=self.url,
            data=json.dumps(body).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": self._authorization,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                response.read()
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            raise DeliveryError(
                f"Message send failed with status {exc.code}: {raw_error[:400]}"
            ) from exc
        except (error.URLError, TimeoutError, ConnectionError) as exc:
            raise DeliveryError(f"Message send failed: {exc}") from exc
