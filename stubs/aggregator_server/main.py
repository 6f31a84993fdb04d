"""Mock account aggregator serving JSON fixtures from stubs/aggregator_stub"""

import json
import math
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

app = FastAPI(title="Mock Aggregator Server", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/aggregator_stub") if os.path.exists("/aggregator_stub") else Path(__file__).resolve().parents[1] / "aggregator_stub"

# Items refreshed through PATCH report UPDATING until polled once
_refreshing = set()


class AuthRequest(BaseModel):
    clientId: str
    clientSecret: str


def _load(item_id: str) -> dict:
    file = DATA_DIR / f"item_{item_id}.json"
    if not file.exists():
        raise HTTPException(status_code=404, detail="item not found")
    return json.loads(file.read_text())


def _find_item_for_account(account_id: str) -> dict:
    for file in DATA_DIR.glob("item_*.json"):
        data = json.loads(file.read_text())
        if any(a["id"] == account_id for a in data.get("accounts", [])):
            return data
    raise HTTPException(status_code=404, detail="account not found")


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _materialize(txn: dict, now: datetime) -> dict:
    """Fixtures use daysAgo so the data always falls inside a trailing window"""
    txn = dict(txn)
    days_ago = txn.pop("daysAgo", None)
    if days_ago is not None:
        txn["date"] = (now - timedelta(days=days_ago)).isoformat()
    return txn


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/auth")
def auth(body: AuthRequest):
    return {"apiKey": f"stub-key-{body.clientId}"}


@app.patch("/items/{item_id}")
def refresh_item(item_id: str):
    item = dict(_load(item_id)["item"])
    _refreshing.add(item_id)
    item["status"] = "UPDATING"
    return item


@app.get("/items/{item_id}")
def get_item(item_id: str):
    item = dict(_load(item_id)["item"])
    if item_id in _refreshing:
        _refreshing.discard(item_id)
        item["lastUpdatedAt"] = datetime.now(timezone.utc).isoformat()
    return item


@app.get("/accounts")
def list_accounts(itemId: str):
    accounts = _load(itemId).get("accounts", [])
    return {"total": len(accounts), "results": accounts}


@app.get("/transactions")
def list_transactions(
    accountId: str,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    page: int = 1,
    pageSize: int = 500,
):
    now = datetime.now(timezone.utc)
    data = _find_item_for_account(accountId)
    transactions = [
        _materialize(t, now) for t in data.get("transactions", []) if t.get("accountId") == accountId
    ]
    if date_from:
        transactions = [t for t in transactions if _parse(t["date"]) >= _parse(date_from)]
    if date_to:
        transactions = [t for t in transactions if _parse(t["date"]) <= _parse(date_to)]

    total_pages = max(1, math.ceil(len(transactions) / pageSize))
    start = (page - 1) * pageSize
    return {
        "total": len(transactions),
        "totalPages": total_pages,
        "page": page,
        "results": transactions[start : start + pageSize],
    }
