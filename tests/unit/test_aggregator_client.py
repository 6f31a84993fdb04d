"""Unit tests for the aggregator HTTP client using httpx.MockTransport"""

import httpx
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from fintrack_engine.domain.exceptions import AggregatorRequestFailed
from fintrack_engine.infrastructure.clients.aggregator import AggregatorClient

WINDOW_END = datetime(2025, 6, 15, tzinfo=timezone.utc)
WINDOW_START = WINDOW_END - timedelta(days=7)


def make_client(handler, **kwargs) -> AggregatorClient:
    kwargs.setdefault("client_id", "")
    return AggregatorClient(base_url="http://aggregator.test", transport=httpx.MockTransport(handler), **kwargs)


async def test_get_item_status_parses_connector_name():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/items/item-1"
        return httpx.Response(200, json={
            "id": "item-1",
            "status": "updated",
            "connector": {"name": "Nubank"},
            "lastUpdatedAt": "2025-06-14T10:00:00Z",
        })

    item = await make_client(handler).get_item_status("item-1")

    assert item.status == "UPDATED"
    assert item.institution_name == "Nubank"
    assert item.last_updated_at == datetime(2025, 6, 14, 10, tzinfo=timezone.utc)


async def test_update_item_uses_patch():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.method)
        return httpx.Response(200, json={"id": "item-1", "status": "UPDATING"})

    item = await make_client(handler).update_item("item-1")

    assert seen == ["PATCH"]
    assert item.status == "UPDATING"


async def test_list_accounts():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["itemId"] == "item-1"
        return httpx.Response(200, json={"results": [
            {"id": "acc-1", "name": "Nubank", "type": "BANK", "number": "12345678", "balance": 1520.35},
        ]})

    accounts = await make_client(handler).list_accounts("item-1")

    assert len(accounts) == 1
    assert accounts[0].id == "acc-1"
    assert accounts[0].balance == Decimal("1520.35")


async def test_list_transactions_follows_pagination():
    pages = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        pages.append(page)
        assert request.url.params["accountId"] == "acc-1"
        return httpx.Response(200, json={
            "totalPages": 2,
            "results": [{
                "id": f"t-{page}",
                "date": "2025-06-10T12:00:00Z",
                "amount": 10.5,
                "type": "DEBIT",
                "status": "POSTED",
                "merchant": {"name": "Cafe"},
            }],
        })

    transactions = await make_client(handler, page_size=1).list_transactions("acc-1", WINDOW_START, WINDOW_END)

    assert pages == [1, 2]
    assert [t.id for t in transactions] == ["t-1", "t-2"]
    assert transactions[0].account_id == "acc-1"
    assert transactions[0].merchant_name == "Cafe"


async def test_authenticates_once_and_sends_api_key():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/auth":
            return httpx.Response(200, json={"apiKey": "secret-key"})
        assert request.headers["X-API-KEY"] == "secret-key"
        return httpx.Response(200, json={"id": "item-1", "status": "UPDATED"})

    client = make_client(handler, client_id="id", client_secret="secret")
    await client.get_item_status("item-1")
    await client.get_item_status("item-1")

    assert calls == ["/auth", "/items/item-1", "/items/item-1"]


async def test_http_error_raises_request_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom"})

    with pytest.raises(AggregatorRequestFailed):
        await make_client(handler).list_accounts("item-1")


async def test_timeout_raises_request_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(AggregatorRequestFailed):
        await make_client(handler).get_item_status("item-1")


async def test_invalid_json_raises_request_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not json")

    with pytest.raises(AggregatorRequestFailed):
        await make_client(handler).get_item_status("item-1")


async def test_malformed_item_raises_request_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "UPDATED"})

    with pytest.raises(AggregatorRequestFailed):
        await make_client(handler).get_item_status("item-1")
