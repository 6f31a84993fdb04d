"""Data access layer for ledger entities"""

import uuid
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from fintrack_engine.infrastructure.database.models import (
    Account,
    AccountLink,
    Connection,
    CreditInstallment,
    RecurringBill,
)
from fintrack_engine.domain.models import CREDIT_PAYMENT_METHOD


def as_uuid(value) -> Optional[uuid.UUID]:
    """Coerce a path/body identifier to UUID; None for blanks and malformed ids"""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class AccountRepository:
    """Repository for internal accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str, account_id) -> Optional[Account]:
        account_uuid = as_uuid(account_id)
        if account_uuid is None:
            return None
        return (
            self.db.query(Account)
            .filter(Account.id == account_uuid, Account.user_id == user_id)
            .first()
        )

    def list_for_user(self, user_id: str) -> List[Account]:
        return (
            self.db.query(Account)
            .filter(Account.user_id == user_id)
            .order_by(Account.created_at, Account.name)
            .all()
        )

    def create(self, user_id: str, **fields) -> Account:
        account = Account(user_id=user_id, **fields)
        self.db.add(account)
        self.db.flush()  # Get ID without committing
        return account


class ConnectionRepository:
    """Repository for linked aggregator items and their account mappings"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_item(self, user_id: str, item_id: str) -> Optional[Connection]:
        return (
            self.db.query(Connection)
            .filter(Connection.user_id == user_id, Connection.external_item_id == item_id)
            .first()
        )

    def list_for_user(self, user_id: str) -> List[Connection]:
        return (
            self.db.query(Connection)
            .filter(Connection.user_id == user_id)
            .order_by(Connection.created_at)
            .all()
        )

    def ensure(self, user_id: str, item_id: str) -> Connection:
        """Find the connection for an item, creating a pending one on first sight"""
        connection = self.get_by_item(user_id, item_id)
        if connection is None:
            connection = Connection(user_id=user_id, external_item_id=item_id, status="pending")
            self.db.add(connection)
            self.db.flush()
        return connection

    def account_mapping(self, connection_id: uuid.UUID) -> Dict[str, uuid.UUID]:
        links = self.db.query(AccountLink).filter(AccountLink.connection_id == connection_id).all()
        return {link.external_account_id: link.account_id for link in links}

    def save_link(self, connection_id: uuid.UUID, external_account_id: str, account_id: uuid.UUID) -> None:
        link = self.db.get(AccountLink, (connection_id, external_account_id))
        if link is None:
            self.db.add(
                AccountLink(
                    connection_id=connection_id,
                    external_account_id=external_account_id,
                    account_id=account_id,
                )
            )
        elif link.account_id != account_id:
            link.account_id = account_id


class BillRepository:
    """Repository for recurring bills"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str, bill_id) -> Optional[RecurringBill]:
        bill_uuid = as_uuid(bill_id)
        if bill_uuid is None:
            return None
        return (
            self.db.query(RecurringBill)
            .filter(RecurringBill.id == bill_uuid, RecurringBill.user_id == user_id)
            .first()
        )

    def list_for_user(self, user_id: str) -> List[RecurringBill]:
        return (
            self.db.query(RecurringBill)
            .filter(RecurringBill.user_id == user_id)
            .order_by(RecurringBill.next_due_date.asc())
            .all()
        )

    def create(self, user_id: str, **fields) -> RecurringBill:
        bill = RecurringBill(user_id=user_id, **fields)
        self.db.add(bill)
        self.db.flush()
        return bill

    def find_linked_credit_bill(self, user_id: str, card_account_id: uuid.UUID, title: str) -> Optional[RecurringBill]:
        """The credit-method bill that generates installments for (card, title)"""
        return (
            self.db.query(RecurringBill)
            .filter(
                RecurringBill.user_id == user_id,
                RecurringBill.account_id == card_account_id,
                RecurringBill.title == title,
                RecurringBill.payment_method == CREDIT_PAYMENT_METHOD.value,
            )
            .order_by(RecurringBill.created_at)
            .first()
        )


class InstallmentRepository:
    """Repository for credit card installments"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str, installment_id) -> Optional[CreditInstallment]:
        installment_uuid = as_uuid(installment_id)
        if installment_uuid is None:
            return None
        return (
            self.db.query(CreditInstallment)
            .filter(CreditInstallment.id == installment_uuid, CreditInstallment.user_id == user_id)
            .first()
        )

    def list_for_user(self, user_id: str, include_paid: bool = True) -> List[CreditInstallment]:
        query = self.db.query(CreditInstallment).filter(CreditInstallment.user_id == user_id)
        if not include_paid:
            query = query.filter(CreditInstallment.paid.is_(False))
        return query.order_by(CreditInstallment.due_date.asc(), CreditInstallment.installment_number).all()

    def find_for_cycle(self, user_id: str, card_account_id: uuid.UUID, title: str, due_date: date) -> Optional[CreditInstallment]:
        return (
            self.db.query(CreditInstallment)
            .filter(
                CreditInstallment.user_id == user_id,
                CreditInstallment.card_account_id == card_account_id,
                CreditInstallment.title == title,
                CreditInstallment.due_date == due_date,
            )
            .order_by(CreditInstallment.created_at)
            .first()
        )

    def earliest_unpaid(self, user_id: str, card_account_id: uuid.UUID, title: str) -> Optional[CreditInstallment]:
        return (
            self.db.query(CreditInstallment)
            .filter(
                CreditInstallment.user_id == user_id,
                CreditInstallment.card_account_id == card_account_id,
                CreditInstallment.title == title,
                CreditInstallment.paid.is_(False),
            )
            .order_by(CreditInstallment.due_date.asc(), CreditInstallment.installment_number)
            .first()
        )

    def add_many(self, installments: List[CreditInstallment]) -> None:
        self.db.add_all(installments)
        self.db.flush()
