"""Recurring Obligation Scheduler - bill cycles, derived status and non-credit payments"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from fintrack_engine.domain.bills import advance_cycle, classify_bill, resolve_payment, summarize_bills
from fintrack_engine.domain.exceptions import NotFoundError, ValidationError
from fintrack_engine.domain.models import (
    AccountType,
    BillPayment,
    BillStatus,
    BillSummary,
    CREDIT_PAYMENT_METHOD,
    Frequency,
    PaymentMethod,
    PaymentResult,
)
from fintrack_engine.domain.schedule import next_due_date
from fintrack_engine.infrastructure.database.ledger import LedgerWriter
from fintrack_engine.infrastructure.database.models import RecurringBill
from fintrack_engine.infrastructure.database.repositories import AccountRepository, BillRepository
from fintrack_engine.infrastructure.database.session import unit_of_work
from fintrack_engine.infrastructure.observability.logging import log_payment_recorded
from fintrack_engine.infrastructure.observability.metrics import payments_counter
from fintrack_engine.services.credit import CreditInstallmentReconciler


class RecurringBillScheduler:
    """Owns each bill's due-date cycle and the non-credit payment flow"""

    def __init__(self, db: Session, ledger: LedgerWriter | None = None):
        self.db = db
        self.ledger = ledger or LedgerWriter(db)
        self.bills = BillRepository(db)
        self.accounts = AccountRepository(db)

    def _funding_account(self, user_id: str, account_id: Optional[str]):
        if not account_id:
            return None
        account = self.accounts.get(user_id, account_id)
        if account is None:
            raise ValidationError(f"Unknown funding account: {account_id}")
        return account

    def create_bill(
        self,
        user_id: str,
        title: str,
        amount: Decimal,
        frequency: str,
        start_date: date,
        next_due: Optional[date] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> RecurringBill:
        """
        Create a recurring bill.

        When no due date is given it is computed from ``start_date``. Credit bills
        need a card and get an installment scheduled for their first due date.
        """
        if not title or not title.strip():
            raise ValidationError("Bill title is required")
        if Decimal(amount) <= 0:
            raise ValidationError("Bill amount must be positive")
        try:
            frequency = Frequency(frequency)
            method = PaymentMethod(payment_method) if payment_method else None
        except ValueError as e:
            raise ValidationError(str(e))

        account = self._funding_account(user_id, account_id)
        if method is CREDIT_PAYMENT_METHOD and account is None:
            raise ValidationError("Credit bills need a card account")
        if method is CREDIT_PAYMENT_METHOD and account.type != AccountType.CREDIT.value:
            raise ValidationError(f"Account '{account.name}' is not a credit account")

        with unit_of_work(self.db, "create_bill"):
            bill = self.bills.create(
                user_id,
                title=title.strip(),
                amount=Decimal(amount),
                frequency=frequency.value,
                start_date=start_date,
                next_due_date=next_due or next_due_date(start_date, frequency),
                account_id=account.id if account else None,
                category_id=category_id,
                payment_method=method.value if method else None,
            )
            if method is CREDIT_PAYMENT_METHOD:
                CreditInstallmentReconciler(self.db, self.ledger).schedule_cycle(
                    user_id, account.id, bill.title, bill.amount, bill.next_due_date
                )

        logging.info(
            "Recurring bill created",
            extra={"user_id": user_id, "bill_id": str(bill.id), "step": "bill_created"},
        )
        return bill

    def pay_bill(self, user_id: str, bill_id: str, payment: BillPayment, today: Optional[date] = None) -> PaymentResult:
        """
        Record a non-credit payment for the bill's current cycle.

        Writes one negative ledger transaction dated ``payment.payment_date``,
        advances next_due_date, stores the method and funding account on the bill
        and stamps the paid-cycle watermark, all in one transaction.

        Raises:
            NotFoundError: Unknown bill
            ValidationError: No method resolves, or the method needs an account and none is given
            UnsupportedMethod: Credit method; use the installment reconciler instead
            ConcurrentModification: The bill was advanced by another payment meanwhile
        """
        bill = self.bills.get(user_id, bill_id)
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")

        method, account_id = resolve_payment(
            payment.payment_method,
            bill.payment_method,
            payment.account_id,
            str(bill.account_id) if bill.account_id else None,
        )
        account = self._funding_account(user_id, account_id)
        paid_on = payment.payment_date or today or date.today()
        amount = -abs(Decimal(bill.amount))

        with unit_of_work(self.db, "pay_bill"):
            transaction = self.ledger.insert_transaction(
                user_id=user_id,
                title=bill.title,
                amount=amount,
                on_date=paid_on,
                account_id=account.id if account else None,
                category_id=bill.category_id,
                source="bill",
            )
            new_due = advance_cycle(bill)
            bill.payment_method = method.value
            if account is not None:
                bill.account_id = account.id

        payments_counter.labels(path="bill").inc()
        log_payment_recorded(user_id, "bill", bill.title, str(amount), new_due.isoformat())

        return PaymentResult(
            transaction_id=transaction.id,
            amount=amount,
            bill_id=str(bill.id),
            next_due_date=new_due,
        )

    def list_bills(self, user_id: str, today: Optional[date] = None) -> List[Tuple[RecurringBill, BillStatus]]:
        """Bills ordered by due date with their derived status"""
        today = today or date.today()
        return [
            (bill, classify_bill(bill.next_due_date, bill.last_paid_cycle_due_date, today))
            for bill in self.bills.list_for_user(user_id)
        ]

    def status_of(self, user_id: str, bill_id: str, today: Optional[date] = None) -> BillStatus:
        bill = self.bills.get(user_id, bill_id)
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")
        return classify_bill(bill.next_due_date, bill.last_paid_cycle_due_date, today or date.today())

    def summary(self, user_id: str, today: Optional[date] = None) -> BillSummary:
        return summarize_bills(self.bills.list_for_user(user_id), today or date.today())
