"""Splitwise ledger client and the add-expense tool built on it."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol
from urllib import error, request

from assistant_orchestrator.tools.schemas import AddExpenseInput, ToolResult

logger = logging.getLogger(__name__)

ACTIVITY_LINK = "https://secure.splitwise.com/#/activity"
CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "BRL": "R$"}


class LedgerNetworkError(RuntimeError):
    """Transport failed before an HTTP response was received."""


class LedgerServerError(RuntimeError):
    """Ledger kept answering 5xx after all retries."""


class LedgerApiError(RuntimeError):
    """Ledger rejected the request; not retried."""


@dataclass(frozen=True)
class LedgerResponse:
    status_code: int
    body: dict[str, Any]


class LedgerTransport(Protocol):
    def __call__(
        self,
        url: str,
        *,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout_s: float,
    ) -> LedgerResponse: ...


def urllib_transport(
    url: str,
    *,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout_s: float,
) -> LedgerResponse:
    req = request.Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers={**headers, "Content-Type": "application/json"},
    )
    try:
        with request.urlopen(req, timeout=timeout_s) as response:
            return LedgerResponse(response.status, _parse_body(response.read()))
    except error.HTTPError as exc:
        return LedgerResponse(exc.code, _parse_body(exc.read()))
    except (error.URLError, TimeoutError, ConnectionError) as exc:
        raise LedgerNetworkError(f"Ledger request failed: {exc}") from exc


class SplitwiseClient:
    """POST expenses with bounded exponential-backoff retry on network errors and 5xx."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://secure.splitwise.com/api/v3.0",
        timeout_s: float = 10.0,
        max_retries: int = 2,
        backoff_s: float = 1.0,
        transport: LedgerTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)
        self._transport = transport or urllib_transport
        self._sleep = sleep

    def create_expense(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = self._post_with_retry("/create_expense", payload)
        if response.status_code >= 400:
            raise LedgerApiError(_api_error_message(response.body) or f"status {response.status_code}")
        message = _api_error_message(response.body)
        if message:
            raise LedgerApiError(message)
        return response.body

    def _post_with_retry(self, path: str, payload: dict[str, Any]) -> LedgerResponse:
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                response = self._transport(
                    url, payload=payload, headers=headers, timeout_s=self.timeout_s
                )
            except LedgerNetworkError as exc:
                last_error = exc
            else:
                if response.status_code < 500:
                    return response
                last_error = LedgerServerError(f"Ledger answered {response.status_code}")

            logger.warning(
                "ledger request failed attempt=%d/%d path=%s reason=%s",
                attempt + 1,
                self.max_retries + 1,
                path,
                last_error,
            )
            if attempt < self.max_retries:
                self._sleep(self.backoff_s * (2**attempt))

        if last_error is None:
            raise RuntimeError("Ledger request failed with unknown error")
        raise last_error


def build_add_expense_tool(
    client: SplitwiseClient,
    *,
    signature: str = "Created with assistant-orchestrator",
) -> Callable[[AddExpenseInput], ToolResult]:
    def _add_expense(payload: AddExpenseInput) -> ToolResult:
        try:
            client.create_expense(
                {
                    "cost": f"{payload.amount:.2f}",
                    "description": payload.title,
                    "details": f"{payload.details}\n\n{signature}",
                    "currency_code": payload.currency,
                    # Direct expense between users.
                    "group_id": 0,
                    "split_equally": True,
                }
            )
        except LedgerApiError as exc:
            return ToolResult(success=False, message=f"Splitwise API: {exc}")

        return ToolResult(
            success=True,
            title=payload.title,
            amount=format_amount(payload.amount, payload.currency),
            link=ACTIVITY_LINK,
        )

    return _add_expense


def format_amount(amount: float, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{symbol}{amount:,.2f}"


def _api_error_message(body: dict[str, Any]) -> str:
    single = body.get("error")
    if single:
        return str(single)
    errors = body.get("errors")
    if isinstance(errors, dict) and errors:
        parts: list[str] = []
        for value in errors.values():
            if isinstance(value, list):
                parts.extend(str(item) for item in value)
            else:
                parts.append(str(value))
        return ", ".join(parts)
    if isinstance(errors, list) and errors:
        return ", ".join(str(item) for item in errors)
    return ""


def _parse_body(raw: bytes) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw.decode("utf-8", errors="replace"))
    except json.JSONDecodeError:
        return {"error": raw.decode("utf-8", errors="replace")[:400]}
    return parsed if isinstance(parsed, dict) else {}
