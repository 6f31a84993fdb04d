"""Credit Installment Reconciler - card installments and the bills that generate them"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from fintrack_engine.domain.bills import advance_cycle
from fintrack_engine.domain.exceptions import DuplicateAvoided, NotFoundError, ValidationError
from fintrack_engine.domain.installments import generate_installment_schedule
from fintrack_engine.domain.models import AccountType, CREDIT_PAYMENT_METHOD, PaymentResult
from fintrack_engine.infrastructure.database.ledger import LedgerWriter
from fintrack_engine.infrastructure.database.models import Account, CreditInstallment, RecurringBill
from fintrack_engine.infrastructure.database.repositories import (
    AccountRepository,
    BillRepository,
    InstallmentRepository,
)
from fintrack_engine.infrastructure.database.session import unit_of_work
from fintrack_engine.infrastructure.observability.logging import log_payment_recorded
from fintrack_engine.infrastructure.observability.metrics import installments_created_counter, payments_counter
from fintrack_engine.utils.date_utils import utcnow


def cycle_key(user_id: str, card_account_id: uuid.UUID, title: str, due_date: date) -> str:
    """Idempotency key of the single installment a bill cycle may own"""
    return f"{user_id}:{card_account_id}:{title}:{due_date.isoformat()}"


class CreditInstallmentReconciler:
    """Creates, locates and settles credit installments"""

    def __init__(self, db: Session, ledger: LedgerWriter | None = None):
        self.db = db
        self.ledger = ledger or LedgerWriter(db)
        self.accounts = AccountRepository(db)
        self.bills = BillRepository(db)
        self.installments = InstallmentRepository(db)

    def _card(self, user_id: str, card_account_id) -> Account:
        card = self.accounts.get(user_id, card_account_id)
        if card is None:
            raise NotFoundError(f"Card account not found: {card_account_id}")
        if card.type != AccountType.CREDIT.value:
            raise ValidationError(f"Account '{card.name}' is not a credit account")
        return card

    def create_installments(
        self,
        user_id: str,
        card_account_id: str,
        title: str,
        total_amount: Decimal,
        installment_count: int,
        base_date: date,
    ) -> List[CreditInstallment]:
        """
        Register a credit purchase as ``installment_count`` monthly installments.

        Each installment is ``total_amount / installment_count`` rounded to the cent
        (no remainder redistribution). The card's available credit limit drops by
        the summed installment amount in the same transaction.
        """
        if not title or not title.strip():
            raise ValidationError("Purchase title is required")
        card = self._card(user_id, card_account_id)
        slices = generate_installment_schedule(total_amount, installment_count, base_date)
        purchase_id = uuid.uuid4()

        with unit_of_work(self.db, "create_installments"):
            rows = [
                CreditInstallment(
                    user_id=user_id,
                    card_account_id=card.id,
                    purchase_id=purchase_id,
                    title=title.strip(),
                    amount=s.amount,
                    installment_number=s.installment_number,
                    total_installments=s.total_installments,
                    due_date=s.due_date,
                    paid=False,
                )
                for s in slices
            ]
            self.installments.add_many(rows)
            self.ledger.adjust_credit_limit(card.id, -sum((s.amount for s in slices), Decimal("0")))

        installments_created_counter.inc(len(rows))
        logging.info(
            "Credit purchase registered",
            extra={
                "user_id": user_id,
                "step": "installments_created",
                "purchase_id": str(purchase_id),
                "installments": len(rows),
            },
        )
        return rows

    def schedule_cycle(
        self,
        user_id: str,
        card_account_id: uuid.UUID,
        title: str,
        amount: Decimal,
        due_date: date,
    ) -> Tuple[CreditInstallment, bool]:
        """
        Find-or-create the pending installment for one bill cycle, inside the
        caller's transaction. Returns (installment, created).
        """
        existing = self.installments.find_for_cycle(user_id, card_account_id, title, due_date)
        if existing is not None:
            return existing, False

        created = self.ledger.insert_installment_if_absent(
            {
                "id": uuid.uuid4(),
                "user_id": user_id,
                "card_account_id": card_account_id,
                "title": title,
                "amount": Decimal(amount),
                "installment_number": 1,
                "total_installments": 1,
                "due_date": due_date,
                "paid": False,
                "idempotency_key": cycle_key(user_id, card_account_id, title, due_date),
            }
        )
        if created:
            installments_created_counter.inc()
        return self.installments.find_for_cycle(user_id, card_account_id, title, due_date), created

    def ensure_credit_card_payment(
        self,
        user_id: str,
        card_account_id: str,
        title: str,
        amount: Decimal,
        due_date: date,
    ) -> CreditInstallment:
        """
        Idempotently ensure exactly one pending installment for (card, title, due date).

        Calling this again with the same arguments returns the existing record.
        """
        if not title or not title.strip():
            raise ValidationError("Payment title is required")
        if Decimal(amount) <= 0:
            raise ValidationError("Payment amount must be positive")
        card = self._card(user_id, card_account_id)
        with unit_of_work(self.db, "ensure_credit_card_payment"):
            installment, created = self.schedule_cycle(user_id, card.id, title.strip(), Decimal(amount), due_date)

        if not created:
            logging.info(
                "Installment already scheduled",
                extra={"user_id": user_id, "step": "duplicate_avoided", "installment_id": str(installment.id)},
            )
        return installment

    def record_installment_payment(
        self,
        user_id: str,
        installment_id: str,
        payment_date: Optional[date] = None,
    ) -> PaymentResult:
        """Pay a specific installment (and advance its linked bill, if any)"""
        installment = self.installments.get(user_id, installment_id)
        if installment is None:
            raise NotFoundError(f"Installment not found: {installment_id}")
        return self._settle(user_id, installment, None, payment_date)

    def record_bill_payment(self, user_id: str, bill_id: str, payment_date: Optional[date] = None) -> PaymentResult:
        """
        Pay a credit-method bill through its earliest unpaid installment.

        Raises:
            NotFoundError: Unknown bill
            ValidationError: Bill is not credit-funded, has no card, or has no pending installment
        """
        bill = self.bills.get(user_id, bill_id)
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")
        if bill.payment_method != CREDIT_PAYMENT_METHOD.value or bill.account_id is None:
            raise ValidationError("Only credit bills with a card are paid through installments")

        installment = self.installments.earliest_unpaid(user_id, bill.account_id, bill.title)
        if installment is None:
            raise ValidationError("No pending installment found for this bill")
        return self._settle(user_id, installment, bill, payment_date)

    def _settle(
        self,
        user_id: str,
        installment: CreditInstallment,
        bill: Optional[RecurringBill],
        payment_date: Optional[date],
    ) -> PaymentResult:
        """
        Settle one installment in a single transaction:
        ledger debit, paid flag, linked bill advanced once, next cycle scheduled.

        Raises:
            DuplicateAvoided: Installment was already paid
        """
        if installment.paid:
            raise DuplicateAvoided(f"Installment {installment.id} is already paid")

        amount = -abs(Decimal(installment.amount))
        paid_on = payment_date or date.today()
        new_due = None

        with unit_of_work(self.db, "record_credit_payment"):
            if not self.ledger.mark_installment_paid(installment.id, utcnow()):
                raise DuplicateAvoided(f"Installment {installment.id} is already paid")

            linked = bill or self.bills.find_linked_credit_bill(user_id, installment.card_account_id, installment.title)
            transaction = self.ledger.insert_transaction(
                user_id=user_id,
                title=installment.title,
                amount=amount,
                on_date=paid_on,
                account_id=installment.card_account_id,
                category_id=linked.category_id if linked else None,
                source="installment",
            )

            if linked is not None:
                new_due = advance_cycle(linked)
                if linked.account_id is not None:
                    self.schedule_cycle(user_id, linked.account_id, linked.title, linked.amount, new_due)

        payments_counter.labels(path="installment").inc()
        log_payment_recorded(
            user_id,
            "installment",
            installment.title,
            str(amount),
            new_due.isoformat() if new_due else None,
        )

        return PaymentResult(
            transaction_id=transaction.id,
            amount=amount,
            bill_id=str(linked.id) if linked else None,
            installment_id=str(installment.id),
            next_due_date=new_due,
        )
