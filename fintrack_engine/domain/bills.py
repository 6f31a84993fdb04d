"""Recurring bill cycle state - pure functions over bill attributes"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from fintrack_engine.domain.exceptions import UnsupportedMethod, ValidationError
from fintrack_engine.domain.models import BillStatus, BillSummary, CREDIT_PAYMENT_METHOD, PaymentMethod
from fintrack_engine.domain.schedule import is_last_day_of_month, next_due_date


def is_cycle_paid(next_due: Optional[date], last_paid_cycle_due: Optional[date], today: date) -> bool:
    """
    A cycle reads as paid when the watermark recorded at payment time still matches
    the bill's live due date and that date has not elapsed yet.
    """
    if next_due is None or last_paid_cycle_due is None:
        return False
    return last_paid_cycle_due == next_due and next_due >= today


def classify_bill(next_due: Optional[date], last_paid_cycle_due: Optional[date], today: date) -> BillStatus:
    """
    Derive Paid / Pending / Overdue for a bill.

    - Paid:    watermark matches next_due and next_due >= today
    - Overdue: next_due < today and not paid
    - Pending: next_due >= today and not paid (also when no due date is set)
    """
    if is_cycle_paid(next_due, last_paid_cycle_due, today):
        return BillStatus.PAID
    if next_due is not None and next_due < today:
        return BillStatus.OVERDUE
    return BillStatus.PENDING


def resolve_payment(
    requested_method: Optional[str],
    stored_method: Optional[str],
    requested_account_id: Optional[str],
    stored_account_id: Optional[str],
) -> Tuple[PaymentMethod, Optional[str]]:
    """
    Resolve the method and funding account for a non-credit bill payment.

    Explicit arguments win over the values stored on the bill.

    Raises:
        ValidationError: No method resolves, the method is unknown, or an
            account-backed method has no funding account
        UnsupportedMethod: The method is credit (handled by the installment path)
    """
    raw_method = requested_method or stored_method
    if not raw_method:
        raise ValidationError("Select how this bill was paid")

    try:
        method = PaymentMethod(raw_method)
    except ValueError:
        raise ValidationError(f"Unknown payment method: {raw_method}")

    if method is CREDIT_PAYMENT_METHOD:
        raise UnsupportedMethod("Credit bills are paid through their card installments")

    account_id = requested_account_id or stored_account_id
    if method.requires_account and not account_id:
        raise ValidationError(f"{method.value} payments need a funding account")

    return method, (account_id if method.requires_account else requested_account_id)


def advance_cycle(bill) -> date:
    """
    Close the bill's current cycle: move next_due_date one period forward and
    stamp the paid-cycle watermark with the new date.

    Seeded from next_due_date, or start_date when no due date is set yet. A
    monthly bill started on the 31st that was clamped to Feb 28 goes back to the
    31st in March instead of drifting to the 28th.

    Raises:
        ValidationError: Bill has neither a due date nor a start date
    """
    seed = bill.next_due_date or bill.start_date
    if seed is None:
        raise ValidationError(f"Bill '{bill.title}' has no due date to advance from")

    anchor_day = None
    if bill.start_date and seed.day < bill.start_date.day and is_last_day_of_month(seed):
        anchor_day = bill.start_date.day
    new_due = next_due_date(seed, bill.frequency, anchor_day=anchor_day)
    bill.next_due_date = new_due
    bill.last_paid_cycle_due_date = new_due
    return new_due


def summarize_bills(bills: Iterable, today: date) -> BillSummary:
    """Count and total bills by derived status"""
    summary = BillSummary()
    for bill in bills:
        status = classify_bill(bill.next_due_date, bill.last_paid_cycle_due_date, today)
        amount = Decimal(bill.amount)
        summary.total += 1
        if status is BillStatus.PAID:
            summary.paid += 1
            continue

        # Overdue bills are also unpaid, so they count towards pending
        summary.pending += 1
        summary.pending_amount += amount
        if status is BillStatus.OVERDUE:
            summary.overdue += 1
            summary.overdue_amount += amount

    return summary
