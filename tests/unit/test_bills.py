"""Unit tests for bill status derivation and payment resolution"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from fintrack_engine.domain.bills import advance_cycle, classify_bill, resolve_payment, summarize_bills
from fintrack_engine.domain.exceptions import UnsupportedMethod, ValidationError
from fintrack_engine.domain.models import BillStatus, PaymentMethod

TODAY = date(2025, 6, 15)


def test_unpaid_future_bill_is_pending():
    assert classify_bill(date(2025, 6, 20), None, TODAY) is BillStatus.PENDING


def test_due_today_is_pending():
    assert classify_bill(TODAY, None, TODAY) is BillStatus.PENDING


def test_past_due_is_overdue():
    assert classify_bill(date(2025, 6, 10), None, TODAY) is BillStatus.OVERDUE


def test_paid_cycle_reads_paid():
    assert classify_bill(date(2025, 7, 10), date(2025, 7, 10), TODAY) is BillStatus.PAID


def test_paid_reverts_once_cycle_elapses():
    """The watermark stops counting once the advanced due date is in the past"""
    assert classify_bill(date(2025, 7, 10), date(2025, 7, 10), date(2025, 7, 11)) is BillStatus.OVERDUE


def test_stale_watermark_does_not_count():
    assert classify_bill(date(2025, 8, 10), date(2025, 7, 10), TODAY) is BillStatus.PENDING


def test_missing_due_date_is_pending():
    assert classify_bill(None, None, TODAY) is BillStatus.PENDING


def test_resolve_uses_stored_method_and_account():
    method, account = resolve_payment(None, "Debit", None, "acc-1")
    assert method is PaymentMethod.DEBIT
    assert account == "acc-1"


def test_resolve_explicit_arguments_win():
    method, account = resolve_payment("Pix", "Debit", "acc-2", "acc-1")
    assert method is PaymentMethod.PIX
    assert account == "acc-2"


def test_resolve_requires_a_method():
    with pytest.raises(ValidationError):
        resolve_payment(None, None, "acc-1", None)


def test_resolve_rejects_unknown_method():
    with pytest.raises(ValidationError):
        resolve_payment("Cheque", None, "acc-1", None)


def test_resolve_rejects_credit_before_checking_account():
    with pytest.raises(UnsupportedMethod):
        resolve_payment("Credit", None, None, None)


def test_resolve_debit_without_account_fails():
    with pytest.raises(ValidationError):
        resolve_payment("Debit", None, None, None)


def test_resolve_cash_needs_no_account():
    method, account = resolve_payment("Cash", None, None, "acc-1")
    assert method is PaymentMethod.CASH
    assert account is None


def _bill(**fields):
    defaults = dict(title="Rent", amount=Decimal("1500.00"), frequency="monthly",
                    start_date=date(2025, 1, 31), next_due_date=date(2025, 1, 31),
                    last_paid_cycle_due_date=None)
    defaults.update(fields)
    return SimpleNamespace(**defaults)


def test_advance_cycle_moves_due_date_and_stamps_watermark():
    bill = _bill()
    new_due = advance_cycle(bill)

    assert new_due == date(2025, 2, 28)
    assert bill.next_due_date == date(2025, 2, 28)
    assert bill.last_paid_cycle_due_date == date(2025, 2, 28)


def test_advance_cycle_keeps_start_day_anchor():
    bill = _bill(next_due_date=date(2025, 2, 28))
    assert advance_cycle(bill) == date(2025, 3, 31)


def test_advance_cycle_seeds_from_start_date():
    bill = _bill(next_due_date=None, start_date=date(2025, 6, 2), frequency="weekly")
    assert advance_cycle(bill) == date(2025, 6, 9)


def test_advance_cycle_without_dates_fails():
    with pytest.raises(ValidationError):
        advance_cycle(_bill(next_due_date=None, start_date=None))


def test_summary_counts_overdue_as_pending():
    bills = [
        _bill(amount=Decimal("100.00"), next_due_date=date(2025, 7, 1), last_paid_cycle_due_date=date(2025, 7, 1)),
        _bill(amount=Decimal("50.00"), next_due_date=date(2025, 6, 20)),
        _bill(amount=Decimal("30.00"), next_due_date=date(2025, 6, 1)),
    ]
    summary = summarize_bills(bills, TODAY)

    assert summary.total == 3
    assert summary.paid == 1
    assert summary.pending == 2
    assert summary.overdue == 1
    assert summary.pending_amount == Decimal("80.00")
    assert summary.overdue_amount == Decimal("30.00")
