"""Chat model adapters with function-tool support."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol
from urllib import error, request

from assistant_orchestrator.errors import ModelCallError
from assistant_orchestrator.session.models import ModelResponse, ToolCall
from assistant_orchestrator.tools.registry import ToolDefinition

logger = logging.getLogger(__name__)


class ChatModel(Protocol):
    """Interface for one chat completion round trip."""

    def complete(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ModelResponse: ...


class OpenAIChatModel:
    """OpenAI-compatible chat completions client with automatic tool choice."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 30.0,
        temperature: float = 0.4,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.temperature = temperature

    def complete(
        self,
        *,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ModelResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": messages,
        }
        if tools:
            payload["tools"] = [tool_payload(tool) for tool in tools]
            payload["tool_choice"] = "auto"
        response_json = self._request(payload)
        return parse_completion(response_json)

    def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            raise ModelCallError(
                f"Model request failed with status {exc.code}: {raw_error[:400]}"
            ) from exc
        except (error.URLError, TimeoutError, ConnectionError) as exc:
            raise ModelCallError(f"Model request failed: {exc}") from exc

        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise ModelCallError("Model returned non-JSON response") from exc


def tool_payload(tool: ToolDefinition) -> dict[str, Any]:
    parameters = dict(tool.parameters)
    parameters.pop("title", None)
    parameters["required"] = list(tool.required)
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": parameters,
        },
    }


def parse_completion(response_json: dict[str, Any]) -> ModelResponse:
    choices = response_json.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        raise ModelCallError("Model response did not contain choices")

    message = choices[0].get("message") or {}
    calls = tuple(_parse_tool_call(item) for item in message.get("tool_calls") or [])
    text = _message_text(message.get("content"))
    if not calls and not text:
        raise ModelCallError("Model response had neither text nor tool calls")

    usage = response_json.get("usage")
    return ModelResponse(
        text=text or None,
        tool_calls=calls,
        usage=usage if isinstance(usage, dict) else None,
    )


def _parse_tool_call(item: Any) -> ToolCall:
    if not isinstance(item, dict):
        raise ModelCallError("Malformed tool call in model response")
    function = item.get("function") or {}
    name = function.get("name")
    if not isinstance(name, str) or not name:
        raise ModelCallError("Tool call without a function name")

    raw_arguments = function.get("arguments") or "{}"
    try:
        arguments = json.loads(raw_arguments) if isinstance(raw_arguments, str) else raw_arguments
    except json.JSONDecodeError as exc:
        raise ModelCallError(f"Tool call '{name}' arguments were not valid JSON") from exc
    if not isinstance(arguments, dict):
        raise ModelCallError(f"Tool call '{name}' arguments must be a JSON object")

    return ToolCall(name=name, arguments=arguments, call_id=str(item.get("id") or ""))


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        segments: list[str] = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                segments.append(item["text"])
        return "".join(segments).strip()
    return ""
