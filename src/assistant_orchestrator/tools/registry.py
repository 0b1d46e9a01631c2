"""Tool registry: declared schemas plus name-keyed handlers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from pydantic import BaseModel

from assistant_orchestrator.errors import ToolExecutionError, UnknownToolError
from assistant_orchestrator.tools import handlers
from assistant_orchestrator.tools.ledger import SplitwiseClient, build_add_expense_tool
from assistant_orchestrator.tools.schemas import (
    AddExpenseInput,
    CompleteTaskInput,
    CreateCalendarEventInput,
    SummarizeInput,
    ToolResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDefinition:
    """What the model sees: name, description and JSON parameter schema."""

    name: str
    description: str
    parameters: dict[str, Any]
    required: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    fn: Callable[[Any], ToolResult | dict[str, Any]]

    def definition(self) -> ToolDefinition:
        schema = self.input_model.model_json_schema(by_alias=True)
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=schema,
            required=list(schema.get("required", [])),
        )


class ToolInvoker(Protocol):
    def list_tools(self) -> list[ToolDefinition]: ...

    def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult: ...


class ToolRegistry:
    """Registration-ordered tools; handler failures become failed ToolResults."""

    def __init__(self, specs: list[ToolSpec] | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[ToolDefinition]:
        return [spec.definition() for spec in self._tools.values()]

    def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(name)

        started_at = time.perf_counter()
        try:
            payload = spec.input_model.model_validate(arguments)
            raw_result = spec.fn(payload)
            result = (
                raw_result
                if isinstance(raw_result, ToolResult)
                else ToolResult.model_validate(raw_result)
            )
        except Exception as exc:  # noqa: BLE001
            failure = ToolExecutionError(name, str(exc))
            logger.warning(
                "tool_call event=failed tool=%s duration_ms=%s reason=%s",
                name,
                _duration_ms(started_at),
                failure.reason,
            )
            return ToolResult.failure(name, failure.reason)

        logger.info(
            "tool_call event=completed tool=%s success=%s duration_ms=%s",
            name,
            result.success,
            _duration_ms(started_at),
        )
        return result


def build_registry(*, ledger_client: SplitwiseClient | None = None) -> ToolRegistry:
    specs = [
        ToolSpec(
            name="create_calendar_event",
            description=(
                "Creates a calendar event with title and time, location, and description"
            ),
            input_model=CreateCalendarEventInput,
            fn=handlers.create_calendar_event,
        ),
        ToolSpec(
            name="summarize",
            description="Creates a concise summary of the message in a single paragraph",
            input_model=SummarizeInput,
            fn=handlers.summarize,
        ),
    ]
    if ledger_client is not None:
        specs.append(
            ToolSpec(
                name="add_expense",
                description="Adds an expense to Splitwise to be shared with other people",
                input_model=AddExpenseInput,
                fn=build_add_expense_tool(ledger_client),
            )
        )
    specs.append(
        ToolSpec(
            name="complete_task",
            description="Completes the task at hand by updating its status in the database",
            input_model=CompleteTaskInput,
            fn=handlers.complete_task,
        )
    )
    return ToolRegistry(specs)


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
