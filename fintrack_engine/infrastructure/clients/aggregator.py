"""Account aggregator HTTP client for items, accounts and transactions"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from fintrack_engine.config import settings
from fintrack_engine.domain.exceptions import AggregatorRequestFailed
from fintrack_engine.domain.models import ExternalAccount, ExternalItem, ExternalTransaction
from fintrack_engine.infrastructure.observability.metrics import (
    aggregator_latency_histogram,
    aggregator_failures_counter,
)
from fintrack_engine.utils.date_utils import parse_timestamp


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _parse_item(data: Dict[str, Any]) -> ExternalItem:
    connector = data.get("connector") or {}
    return ExternalItem(
        id=data["id"],
        status=(data.get("status") or "").upper(),
        institution_name=connector.get("name"),
        last_updated_at=parse_timestamp(data.get("lastUpdatedAt")),
    )


def _parse_account(data: Dict[str, Any]) -> ExternalAccount:
    return ExternalAccount(
        id=data["id"],
        name=data.get("name"),
        type=data.get("type"),
        number=data.get("number"),
        balance=_decimal(data.get("balance")),
        currency=data.get("currencyCode"),
    )


def _parse_transaction(data: Dict[str, Any], account_id: str) -> ExternalTransaction:
    merchant = data.get("merchant") or {}
    return ExternalTransaction(
        id=data["id"],
        account_id=data.get("accountId") or account_id,
        date=parse_timestamp(data.get("date")),
        amount=_decimal(data.get("amount")),
        type=data.get("type"),
        status=data.get("status"),
        description=data.get("description"),
        description_raw=data.get("descriptionRaw"),
        merchant_name=merchant.get("name"),
        merchant_business_name=merchant.get("businessName"),
    )


class AggregatorClient:
    """Client for the external account aggregator API"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        page_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.aggregator_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.client_id = client_id if client_id is not None else settings.aggregator_client_id
        self.client_secret = client_secret if client_secret is not None else settings.aggregator_client_secret
        self.page_size = page_size or settings.transactions_page_size
        self.transport = transport
        self._api_key: Optional[str] = None

    async def _authenticate(self, client: httpx.AsyncClient) -> Dict[str, str]:
        """Exchange client credentials for an API key (cached for the client's lifetime)"""
        if not self.client_id:
            return {}
        if self._api_key is None:
            response = await client.post(
                "/auth",
                json={"clientId": self.client_id, "clientSecret": self.client_secret},
            )
            response.raise_for_status()
            self._api_key = response.json()["apiKey"]
        return {"X-API-KEY": self._api_key}

    async def _request(self, method: str, path: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """
        Perform one API call.

        Raises:
            AggregatorRequestFailed: On timeout, transport errors, HTTP errors, or invalid JSON
        """
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            try:
                with aggregator_latency_histogram.time():
                    headers = await self._authenticate(client)
                    response = await client.request(method, path, params=params, headers=headers)
                    response.raise_for_status()
                    return response.json()

            except httpx.TimeoutException as e:
                aggregator_failures_counter.inc()
                raise AggregatorRequestFailed(f"Aggregator timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                aggregator_failures_counter.inc()
                raise AggregatorRequestFailed(f"Aggregator error: {e.response.status_code} on {path}") from e
            except httpx.RequestError as e:
                aggregator_failures_counter.inc()
                raise AggregatorRequestFailed(f"Aggregator unreachable: {e}") from e
            except ValueError as e:
                aggregator_failures_counter.inc()
                raise AggregatorRequestFailed(f"Invalid JSON from aggregator on {path}") from e

    async def update_item(self, item_id: str) -> ExternalItem:
        """Ask the aggregator to refresh an item; returns its status right after the trigger"""
        data = await self._request("PATCH", f"/items/{item_id}")
        return self._item_or_fail(data)

    async def get_item_status(self, item_id: str) -> ExternalItem:
        data = await self._request("GET", f"/items/{item_id}")
        return self._item_or_fail(data)

    def _item_or_fail(self, data: Dict[str, Any]) -> ExternalItem:
        try:
            return _parse_item(data)
        except (KeyError, TypeError, AttributeError) as e:
            raise AggregatorRequestFailed(f"Invalid item data from aggregator: {e}") from e

    async def list_accounts(self, item_id: str) -> List[ExternalAccount]:
        data = await self._request("GET", "/accounts", params={"itemId": item_id})
        try:
            return [_parse_account(account) for account in data.get("results", [])]
        except (KeyError, TypeError, AttributeError) as e:
            raise AggregatorRequestFailed(f"Invalid account data from aggregator: {e}") from e

    async def list_transactions(self, account_id: str, date_from: datetime, date_to: datetime) -> List[ExternalTransaction]:
        """
        Fetch every transaction for an account inside [date_from, date_to].

        Follows pagination until ``totalPages`` is reached.
        """
        transactions: List[ExternalTransaction] = []
        page = 1
        while True:
            data = await self._request(
                "GET",
                "/transactions",
                params={
                    "accountId": account_id,
                    "from": date_from.isoformat(),
                    "to": date_to.isoformat(),
                    "page": page,
                    "pageSize": self.page_size,
                },
            )
            try:
                transactions.extend(_parse_transaction(txn, account_id) for txn in data.get("results", []))
            except (KeyError, TypeError, AttributeError) as e:
                raise AggregatorRequestFailed(f"Invalid transaction data from aggregator: {e}") from e

            total_pages = data.get("totalPages") or 1
            if page >= total_pages:
                return transactions
            page += 1
