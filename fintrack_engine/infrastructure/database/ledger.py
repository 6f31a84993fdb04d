"""Ledger Writer - the narrow persistence boundary for ledger mutations"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from fintrack_engine.domain.exceptions import PersistenceWriteFailed
from fintrack_engine.domain.models import TransactionType
from fintrack_engine.infrastructure.database.models import (
    Account,
    AppliedExternalTransaction,
    CreditInstallment,
    LedgerTransaction,
)


class LedgerWriter:
    """
    Writes ledger state through a Session without committing.

    Callers own the transaction (see ``unit_of_work``). Everything that can race
    between two concurrent operations is expressed as a single statement:
    watermark claims and installment creation use insert .. on conflict do nothing,
    credit limit changes use ``col = col + delta``.
    """

    def __init__(self, db: Session):
        self.db = db

    def _insert(self, model):
        """Core INSERT on the model's table, so rowcount reports conflicts"""
        table = model.__table__
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise PersistenceWriteFailed(f"Conflict-safe insert is not supported on {dialect}")

    def claim_external_ids(self, connection_id: uuid.UUID, external_ids: Iterable[str]) -> List[str]:
        """
        Add ids to the connection's watermark, returning only ids seen for the first time.

        Each claim is an atomic check-and-insert, so two overlapping syncs cannot both
        claim the same id.
        """
        claimed = []
        for external_id in dict.fromkeys(external_ids):
            stmt = (
                self._insert(AppliedExternalTransaction)
                .values(connection_id=connection_id, external_id=external_id)
                .on_conflict_do_nothing(index_elements=["connection_id", "external_id"])
            )
            if self.db.execute(stmt).rowcount == 1:
                claimed.append(external_id)
        return claimed

    def upsert_transactions(self, records: List[Dict[str, Any]]) -> None:
        """
        Write aggregator transactions keyed by id.

        Rows whose id already exists are left untouched, so user edits to an
        imported transaction survive a retried or overlapping window.
        """
        if not records:
            return
        stmt = self._insert(LedgerTransaction).on_conflict_do_nothing(index_elements=["id"])
        self.db.execute(stmt, records)

    def insert_transaction(
        self,
        user_id: str,
        title: str,
        amount: Decimal,
        on_date: date,
        account_id: Optional[uuid.UUID],
        category_id: Optional[str] = None,
        source: str = "manual",
    ) -> LedgerTransaction:
        transaction = LedgerTransaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            amount=amount,
            date=on_date,
            type=(TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME).value,
            account_id=account_id,
            category_id=category_id,
            source=source,
        )
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def set_account_balance(self, account: Account, balance: Decimal, institution: Optional[str] = None) -> None:
        """Overwrite with an aggregator-reported balance (absolute, not a delta)"""
        account.balance = balance
        if institution:
            account.institution = institution

    def link_account_to_connection(self, account: Account, connection_id: uuid.UUID) -> None:
        account.connection_id = connection_id

    def adjust_credit_limit(self, account_id: uuid.UUID, delta: Decimal) -> None:
        """
        Apply a delta to the available credit limit in one server-side UPDATE.

        A NULL limit means the limit is not tracked for that card (cards created
        during sync start that way); it stays NULL and the skip is logged.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.available_credit_limit.isnot(None))
            .values(available_credit_limit=Account.available_credit_limit + delta)
            .execution_options(synchronize_session="fetch")
        )
        if self.db.execute(stmt).rowcount == 0:
            logging.warning(
                "Credit limit not tracked, adjustment skipped",
                extra={"account_id": str(account_id), "delta": str(delta)},
            )

    def insert_installment_if_absent(self, values: Dict[str, Any]) -> bool:
        """Insert an installment unless one with the same idempotency key exists"""
        stmt = (
            self._insert(CreditInstallment)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
        )
        return self.db.execute(stmt).rowcount == 1

    def mark_installment_paid(self, installment_id: uuid.UUID, paid_at: datetime) -> bool:
        """Flip paid=false -> true; False when another payment got there first"""
        stmt = (
            update(CreditInstallment)
            .where(CreditInstallment.id == installment_id, CreditInstallment.paid.is_(False))
            .values(paid=True, paid_date=paid_at)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).rowcount == 1
