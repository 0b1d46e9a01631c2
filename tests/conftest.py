from __future__ import annotations

from typing import Any, Callable

import pytest

from assistant_orchestrator.orchestration.loop import OrchestrationLoop
from assistant_orchestrator.session.models import ModelResponse, ToolCall
from assistant_orchestrator.session.prompts import PromptRenderer
from assistant_orchestrator.storage.memory import InMemoryTaskStorage
from assistant_orchestrator.tools.registry import ToolDefinition, build_registry


class ScriptedChatModel:
    """Test double that replays scripted replies.

    Script items: a ``str`` is a final text reply, a ``dict`` with ``tool``/``args``
    is one tool call, a ``list`` of such dicts is several calls in one reply, and
    an ``Exception`` instance is raised.
    """

    def __init__(self, script: list[Any], *, repeat_last: bool = False) -> None:
        self.script = list(script)
        self.repeat_last = repeat_last
        self.calls: list[dict[str, Any]] = []

    def complete(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ModelResponse:
        self.calls.append({"messages": [dict(item) for item in messages], "tools": list(tools)})
        if not self.script:
            raise AssertionError("ScriptedChatModel ran out of replies")
        item = self.script[0] if self.repeat_last and len(self.script) == 1 else self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return ModelResponse(text=item, usage={"total_tokens": 10})
        specs = item if isinstance(item, list) else [item]
        return ModelResponse(
            tool_calls=tuple(
                ToolCall(name=spec["tool"], arguments=dict(spec.get("args", {})))
                for spec in specs
            ),
        )


@pytest.fixture
def scripted_model() -> Callable[..., ScriptedChatModel]:
    return ScriptedChatModel


@pytest.fixture
def storage() -> InMemoryTaskStorage:
    return InMemoryTaskStorage()


@pytest.fixture
def prompts() -> PromptRenderer:
    return PromptRenderer(timezone="America/Los_Angeles")


@pytest.fixture
def make_loop(prompts: PromptRenderer) -> Callable[..., OrchestrationLoop]:
    def _make(model: ScriptedChatModel, **kwargs: Any) -> OrchestrationLoop:
        kwargs.setdefault("registry", build_registry())
        kwargs.setdefault("max_tool_rounds", 8)
        return OrchestrationLoop(model=model, prompts=prompts, **kwargs)

    return _make
