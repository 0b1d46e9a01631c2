"""Optional cycle tracing, applied as wrappers around the model and tool registry."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from assistant_orchestrator.session.models import ModelResponse
from assistant_orchestrator.session.provider import ChatModel
from assistant_orchestrator.tools.registry import ToolDefinition, ToolInvoker
from assistant_orchestrator.tools.schemas import ToolResult

logger = logging.getLogger(__name__)


class Span:
    def __init__(self, name: str, attributes: dict[str, Any]) -> None:
        self.name = name
        self.attributes = dict(attributes)
        self.status = "ok"

    def set(self, **attributes: Any) -> None:
        self.attributes.update(attributes)


class Tracer(Protocol):
    def span(self, name: str, **attributes: Any) -> Any: ...


class NullTracer:
    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Span]:
        yield Span(name, attributes)


class LoggingTracer:
    """Emit one log line per finished span."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Span]:
        span = Span(name, attributes)
        started_at = time.perf_counter()
        try:
            yield span
        except Exception:
            span.status = "error"
            raise
        finally:
            logger.log(
                self.level,
                "trace span=%s status=%s duration_ms=%s attributes=%s",
                span.name,
                span.status,
                round((time.perf_counter() - started_at) * 1000.0, 2),
                span.attributes,
            )


class RecordingTracer:
    """Keep finished spans in memory."""

    def __init__(self) -> None:
        self.spans: list[Span] = []

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Span]:
        span = Span(name, attributes)
        try:
            yield span
        except Exception:
            span.status = "error"
            raise
        finally:
            self.spans.append(span)


class TracedChatModel:
    def __init__(self, model: ChatModel, tracer: Tracer) -> None:
        self._model = model
        self._tracer = tracer

    def complete(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ModelResponse:
        with self._tracer.span("model_call", input_messages=len(messages)) as span:
            response = self._model.complete(messages=messages, tools=tools)
            span.set(
                output_text=response.text,
                tool_calls=[call.name for call in response.tool_calls],
                usage=response.usage or {},
            )
            return response


class TracedToolInvoker:
    def __init__(self, registry: ToolInvoker, tracer: Tracer) -> None:
        self._registry = registry
        self._tracer = tracer

    def list_tools(self) -> list[ToolDefinition]:
        return self._registry.list_tools()

    def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        with self._tracer.span("tool_call", tool=name, arguments=arguments) as span:
            result = self._registry.invoke(name, arguments)
            span.set(output=result.model_payload())
            return result


def build_tracer(mode: str) -> Tracer | None:
    normalized = mode.lower().strip()
    if normalized in {"", "off", "none"}:
        return None
    if normalized == "log":
        return LoggingTracer()
    raise ValueError(f"Unsupported trace mode: {mode}")
