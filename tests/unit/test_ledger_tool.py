from typing import Any

from assistant_orchestrator.tools.ledger import (
    LedgerNetworkError,
    LedgerResponse,
    SplitwiseClient,
    format_amount,
)
from assistant_orchestrator.tools.registry import build_registry

EXPENSE_ARGS = {
    "title": "Dinner",
    "amount": 127.4,
    "currency": "USD",
    "details": "Shared with: Georgia",
}


class StubTransport:
    def __init__(self, replies: list[Any]) -> None:
        self.replies = list(replies)
        self.requests: list[dict[str, Any]] = []

    def __call__(self, url, *, payload, headers, timeout_s) -> LedgerResponse:
        self.requests.append({"url": url, "payload": payload, "headers": headers})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _client(transport: StubTransport, sleeps: list[float]) -> SplitwiseClient:
    return SplitwiseClient(
        api_key="secret",
        base_url="https://ledger.test/api/v3.0",
        transport=transport,
        sleep=sleeps.append,
    )


def test_server_error_is_retried_once_then_succeeds() -> None:
    transport = StubTransport(
        [LedgerResponse(500, {}), LedgerResponse(200, {"expenses": [{"id": 1}]})]
    )
    sleeps: list[float] = []
    registry = build_registry(ledger_client=_client(transport, sleeps))

    result = registry.invoke("add_expense", EXPENSE_ARGS)

    assert result.success is True
    assert len(transport.requests) == 2
    assert sleeps == [1.0]
    payload = result.model_payload()
    assert payload["amount"] == "$127.40"
    assert payload["title"] == "Dinner"


def test_request_body_matches_ledger_contract() -> None:
    transport = StubTransport([LedgerResponse(200, {"expenses": []})])
    registry = build_registry(ledger_client=_client(transport, []))

    registry.invoke("add_expense", EXPENSE_ARGS)

    sent = transport.requests[0]
    assert sent["url"] == "https://ledger.test/api/v3.0/create_expense"
    assert sent["headers"]["Authorization"] == "Bearer secret"
    assert sent["payload"]["cost"] == "127.40"
    assert sent["payload"]["currency_code"] == "USD"
    assert sent["payload"]["split_equally"] is True
    assert sent["payload"]["details"].startswith("Shared with: Georgia\n\n")


def test_backoff_doubles_between_attempts() -> None:
    transport = StubTransport(
        [LedgerNetworkError("reset"), LedgerNetworkError("reset"), LedgerNetworkError("reset")]
    )
    sleeps: list[float] = []
    registry = build_registry(ledger_client=_client(transport, sleeps))

    result = registry.invoke("add_expense", EXPENSE_ARGS)

    assert result.success is False
    assert result.message == "Error calling tool add_expense"
    assert len(transport.requests) == 3
    assert sleeps == [1.0, 2.0]


def test_api_errors_are_not_retried_and_carry_provider_message() -> None:
    transport = StubTransport(
        [LedgerResponse(200, {"errors": {"base": ["Invalid cost", "Unknown user"]}})]
    )
    sleeps: list[float] = []
    registry = build_registry(ledger_client=_client(transport, sleeps))

    result = registry.invoke("add_expense", EXPENSE_ARGS)

    assert result.success is False
    assert result.message == "Splitwise API: Invalid cost, Unknown user"
    assert len(transport.requests) == 1
    assert sleeps == []


def test_client_errors_are_not_retried() -> None:
    transport = StubTransport([LedgerResponse(401, {"error": "Invalid API request"})])
    sleeps: list[float] = []
    registry = build_registry(ledger_client=_client(transport, sleeps))

    result = registry.invoke("add_expense", EXPENSE_ARGS)

    assert result.message == "Splitwise API: Invalid API request"
    assert len(transport.requests) == 1


def test_amount_formatting_uses_currency_symbol() -> None:
    assert format_amount(1234.5, "EUR") == "€1,234.50"
    assert format_amount(10, "BRL") == "R$10.00"
