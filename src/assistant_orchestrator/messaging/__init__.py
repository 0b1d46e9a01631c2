"""Inbound and outbound messaging adapters."""

from assistant_orchestrator.messaging.inbound import (
    MediaFetcher,
    parse_inbound,
    sanitize_text,
    verify_signature,
)
from assistant_orchestrator.messaging.models import InboundMessage, InboundWebhookPayload
from assistant_orchestrator.messaging.outbound import (
    LoggingMessageSender,
    MessageSender,
    VonageMessageSender,
)

__all__ = [
    "InboundMessage",
    "InboundWebhookPayload",
    "LoggingMessageSender",
    "MediaFetcher",
    "MessageSender",
    "VonageMessageSender",
    "parse_inbound",
    "sanitize_text",
    "verify_signature",
]
