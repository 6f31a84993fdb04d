"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from fintrack_engine.api.main import create_app
from fintrack_engine.domain.models import ExternalAccount, ExternalItem, ExternalTransaction
from fintrack_engine.infrastructure.clients.aggregator import AggregatorClient
from fintrack_engine.infrastructure.database.models import Account, Base, RecurringBill
from fintrack_engine.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def other_db(db: Session) -> Generator[Session, None, None]:
    """Second session on the same database, for concurrent-writer scenarios"""
    other = TestingSessionLocal()
    try:
        yield other
    finally:
        other.close()


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def user_id() -> str:
    return "user_ana"


@pytest.fixture
def make_account(db: Session, user_id: str):
    """Factory for internal accounts"""

    def _make(name: str = "Checking", type: str = "bank", **fields) -> Account:
        account = Account(user_id=fields.pop("user_id", user_id), name=name, type=type, **fields)
        db.add(account)
        db.commit()
        return account

    return _make


@pytest.fixture
def checking(make_account) -> Account:
    return make_account("Checking", "bank", balance=Decimal("1000.00"))


@pytest.fixture
def card(make_account) -> Account:
    return make_account("Visa Platinum", "credit", balance=Decimal("0"), available_credit_limit=Decimal("5000.00"))


@pytest.fixture
def make_bill(db: Session, user_id: str):
    """Factory for recurring bills stored directly, bypassing the scheduler"""

    def _make(title: str = "Internet", amount: str = "120.00", frequency: str = "monthly", **fields) -> RecurringBill:
        fields.setdefault("start_date", date(2025, 6, 2))
        fields.setdefault("next_due_date", fields["start_date"])
        bill = RecurringBill(user_id=user_id, title=title, amount=Decimal(amount), frequency=frequency, **fields)
        db.add(bill)
        db.commit()
        return bill

    return _make


def recent(days_ago: int = 1) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days_ago)


@pytest.fixture
def external_accounts() -> list[ExternalAccount]:
    """Aggregator view of a checking account and a credit card"""
    return [
        ExternalAccount(id="ext-checking", name="Nubank", type="BANK", number="12345678", balance=Decimal("1520.35")),
        ExternalAccount(id="ext-card", name="Nubank Ultravioleta", type="CREDIT", number="4321", balance=Decimal("830.10")),
    ]


@pytest.fixture
def external_transactions() -> dict[str, list[ExternalTransaction]]:
    """Transactions per aggregator account: two posted on checking, one pending, one on the card"""
    return {
        "ext-checking": [
            ExternalTransaction(
                id="t-salary", account_id="ext-checking", date=recent(5), amount=Decimal("4200.00"),
                type="CREDIT", status="POSTED", description="Salary",
            ),
            ExternalTransaction(
                id="t-market", account_id="ext-checking", date=recent(3), amount=Decimal("215.47"),
                type="DEBIT", status="POSTED", merchant_name="Zona Sul",
            ),
            ExternalTransaction(
                id="t-pending", account_id="ext-checking", date=recent(1), amount=Decimal("50.00"),
                type="DEBIT", status="PENDING", description="Pix sent",
            ),
        ],
        "ext-card": [
            ExternalTransaction(
                id="t-stream", account_id="ext-card", date=recent(2), amount=Decimal("39.90"),
                type="DEBIT", status="POSTED", description="Streaming",
            ),
        ],
    }


@pytest.fixture
def aggregator(external_accounts, external_transactions) -> AsyncMock:
    """AggregatorClient double that returns a settled item with the fixtures above"""
    client = AsyncMock(spec=AggregatorClient)
    settled = ExternalItem(id="item-1", status="UPDATED", institution_name="Nubank")
    client.update_item.return_value = settled
    client.get_item_status.return_value = settled
    client.list_accounts.return_value = external_accounts

    async def list_transactions(account_id, date_from, date_to):
        return external_transactions.get(account_id, [])

    client.list_transactions.side_effect = list_transactions
    return client
