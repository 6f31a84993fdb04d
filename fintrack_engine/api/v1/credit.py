"""Credit card purchase and installment endpoints"""

from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from fintrack_engine.api.dependencies import get_request_id
from fintrack_engine.api.v1.bills import payment_response
from fintrack_engine.api.v1.errors import http_error
from fintrack_engine.api.v1.schemas import (
    CardPaymentRequest,
    CreditPaymentRequest,
    InstallmentSchema,
    InstallmentsResponse,
    PaymentResponse,
    PurchaseRequest,
)
from fintrack_engine.domain.exceptions import DomainException, DuplicateAvoided
from fintrack_engine.infrastructure.database.models import CreditInstallment
from fintrack_engine.infrastructure.database.repositories import InstallmentRepository
from fintrack_engine.infrastructure.database.session import get_db
from fintrack_engine.services.credit import CreditInstallmentReconciler

router = APIRouter()


def _installment_schema(installment: CreditInstallment) -> InstallmentSchema:
    return InstallmentSchema(
        installment_id=str(installment.id),
        card_account_id=str(installment.card_account_id),
        purchase_id=str(installment.purchase_id) if installment.purchase_id else None,
        title=installment.title,
        amount=installment.amount,
        installment_number=installment.installment_number,
        total_installments=installment.total_installments,
        due_date=installment.due_date,
        paid=installment.paid,
    )


@router.post("/credit/purchases", response_model=List[InstallmentSchema], status_code=201)
def create_purchase(request_body: PurchaseRequest, request: Request, db: Session = Depends(get_db)):
    """Split a card purchase into monthly installments and reserve the card's credit"""
    try:
        installments = CreditInstallmentReconciler(db).create_installments(
            user_id=request_body.user_id,
            card_account_id=request_body.card_account_id,
            title=request_body.title,
            total_amount=request_body.total_amount,
            installment_count=request_body.installment_count,
            base_date=request_body.base_date,
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    return [_installment_schema(i) for i in installments]


@router.post("/credit/card-payments", response_model=InstallmentSchema)
def ensure_card_payment(request_body: CardPaymentRequest, request: Request, db: Session = Depends(get_db)):
    """Ensure one pending installment exists for (card, title, due date); repeat calls return it"""
    try:
        installment = CreditInstallmentReconciler(db).ensure_credit_card_payment(
            user_id=request_body.user_id,
            card_account_id=request_body.card_account_id,
            title=request_body.title,
            amount=request_body.amount,
            due_date=request_body.due_date,
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    return _installment_schema(installment)


@router.get("/credit/installments", response_model=InstallmentsResponse)
def list_installments(
    user_id: str = Query(..., description="User identifier"),
    include_paid: bool = Query(True),
    db: Session = Depends(get_db),
):
    installments = InstallmentRepository(db).list_for_user(user_id, include_paid=include_paid)
    return InstallmentsResponse(user_id=user_id, installments=[_installment_schema(i) for i in installments])


@router.post("/credit/installments/{installment_id}/pay", response_model=PaymentResponse)
def pay_installment(
    installment_id: str,
    request_body: CreditPaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Settle one installment; an already-paid installment answers applied=false"""
    try:
        result = CreditInstallmentReconciler(db).record_installment_payment(
            request_body.user_id, installment_id, request_body.payment_date
        )
    except DuplicateAvoided as e:
        return PaymentResponse(applied=False, installment_id=installment_id, detail=str(e))
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    return payment_response(result)
