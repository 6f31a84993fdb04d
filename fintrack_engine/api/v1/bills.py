"""Recurring bill endpoints"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from fintrack_engine.api.dependencies import get_request_id
from fintrack_engine.api.v1.errors import http_error
from fintrack_engine.api.v1.schemas import (
    BillCreateRequest,
    BillPaymentRequest,
    BillSchema,
    BillsResponse,
    BillSummaryResponse,
    CreditPaymentRequest,
    PaymentResponse,
)
from fintrack_engine.domain.bills import classify_bill
from fintrack_engine.domain.exceptions import DomainException, DuplicateAvoided
from fintrack_engine.domain.models import BillPayment, BillStatus, PaymentResult
from fintrack_engine.infrastructure.database.models import RecurringBill
from fintrack_engine.infrastructure.database.session import get_db
from fintrack_engine.services.credit import CreditInstallmentReconciler
from fintrack_engine.services.scheduler import RecurringBillScheduler

router = APIRouter()


def _bill_schema(bill: RecurringBill, status: BillStatus) -> BillSchema:
    return BillSchema(
        bill_id=str(bill.id),
        title=bill.title,
        amount=bill.amount,
        frequency=bill.frequency,
        start_date=bill.start_date,
        next_due_date=bill.next_due_date,
        payment_method=bill.payment_method,
        account_id=str(bill.account_id) if bill.account_id else None,
        status=status.value,
    )


def payment_response(result: PaymentResult) -> PaymentResponse:
    return PaymentResponse(
        applied=True,
        transaction_id=result.transaction_id,
        amount=result.amount,
        bill_id=result.bill_id,
        installment_id=result.installment_id,
        next_due_date=result.next_due_date,
    )


@router.post("/bills", response_model=BillSchema, status_code=201)
def create_bill(request_body: BillCreateRequest, request: Request, db: Session = Depends(get_db)):
    """Create a recurring bill; credit bills also get their first installment scheduled"""
    try:
        bill = RecurringBillScheduler(db).create_bill(
            user_id=request_body.user_id,
            title=request_body.title,
            amount=request_body.amount,
            frequency=request_body.frequency,
            start_date=request_body.start_date,
            next_due=request_body.next_due_date,
            account_id=request_body.account_id,
            category_id=request_body.category_id,
            payment_method=request_body.payment_method,
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    return _bill_schema(bill, classify_bill(bill.next_due_date, bill.last_paid_cycle_due_date, date.today()))


@router.get("/bills", response_model=BillsResponse)
def list_bills(
    user_id: str = Query(..., description="User identifier"),
    db: Session = Depends(get_db),
):
    """Bills ordered by next due date, each with its derived Paid / Pending / Overdue status"""
    bills = RecurringBillScheduler(db).list_bills(user_id)
    return BillsResponse(user_id=user_id, bills=[_bill_schema(bill, status) for bill, status in bills])


@router.get("/bills/summary", response_model=BillSummaryResponse)
def bills_summary(
    user_id: str = Query(..., description="User identifier"),
    db: Session = Depends(get_db),
):
    summary = RecurringBillScheduler(db).summary(user_id)
    return BillSummaryResponse(
        user_id=user_id,
        total=summary.total,
        paid=summary.paid,
        pending=summary.pending,
        overdue=summary.overdue,
        pending_amount=summary.pending_amount,
        overdue_amount=summary.overdue_amount,
    )


@router.post("/bills/{bill_id}/pay", response_model=PaymentResponse)
def pay_bill(bill_id: str, request_body: BillPaymentRequest, request: Request, db: Session = Depends(get_db)):
    """
    Record a non-credit payment for the bill's current cycle.

    Credit-method bills are rejected with 409; pay them through /pay-credit.
    """
    payment = BillPayment(
        account_id=request_body.account_id,
        payment_method=request_body.payment_method,
        payment_date=request_body.payment_date,
    )
    try:
        result = RecurringBillScheduler(db).pay_bill(request_body.user_id, bill_id, payment)
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    return payment_response(result)


@router.post("/bills/{bill_id}/pay-credit", response_model=PaymentResponse)
def pay_bill_with_credit(
    bill_id: str,
    request_body: CreditPaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Pay a credit bill by settling its earliest pending installment"""
    try:
        result = CreditInstallmentReconciler(db).record_bill_payment(
            request_body.user_id, bill_id, request_body.payment_date
        )
    except DuplicateAvoided as e:
        return PaymentResponse(applied=False, bill_id=bill_id, detail=str(e))
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    return payment_response(result)
