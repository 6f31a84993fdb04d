"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class ItemSyncResponse(BaseModel):
    """Response for POST /v1/sync/items/{item_id}"""

    item_id: str
    connection_id: Optional[str] = None
    item_status: Optional[str] = None
    refresh_timed_out: bool
    requires_user_action: bool
    accounts_mapped: int
    transactions_applied: int
    duplicates_avoided: int
    last_processed_at: Optional[datetime] = None


class SyncOutcomeSchema(BaseModel):
    item_id: str
    ok: bool
    transactions_applied: int = 0
    duplicates_avoided: int = 0
    error: Optional[str] = None


class SyncRunResponse(BaseModel):
    """Response for POST /v1/sync/run"""

    user_id: str
    mode: str
    failed: int
    outcomes: List[SyncOutcomeSchema]


class ConnectionSchema(BaseModel):
    id: str
    external_item_id: str
    institution_name: Optional[str] = None
    status: str
    last_error: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    last_processed_at: Optional[datetime] = None


class ConnectionsResponse(BaseModel):
    """Response for GET /v1/connections"""

    user_id: str
    connections: List[ConnectionSchema]


class BillCreateRequest(BaseModel):
    """Request body for POST /v1/bills"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    title: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    frequency: str = Field(..., description="weekly | monthly | yearly")
    start_date: date
    next_due_date: Optional[date] = None
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    payment_method: Optional[str] = Field(None, description="Credit | Debit | Cash | Pix")


class BillSchema(BaseModel):
    """Single bill with its derived status"""

    bill_id: str
    title: str
    amount: Decimal
    frequency: str
    start_date: Optional[date] = None
    next_due_date: Optional[date] = None
    payment_method: Optional[str] = None
    account_id: Optional[str] = None
    status: str


class BillsResponse(BaseModel):
    """Response for GET /v1/bills"""

    user_id: str
    bills: List[BillSchema]


class BillSummaryResponse(BaseModel):
    """Response for GET /v1/bills/summary"""

    user_id: str
    total: int
    paid: int
    pending: int
    overdue: int
    pending_amount: Decimal
    overdue_amount: Decimal


class BillPaymentRequest(BaseModel):
    """Request body for POST /v1/bills/{bill_id}/pay"""

    user_id: str = Field(..., min_length=1)
    account_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_date: Optional[date] = None


class CreditPaymentRequest(BaseModel):
    """Request body for the credit payment endpoints"""

    user_id: str = Field(..., min_length=1)
    payment_date: Optional[date] = None


class PaymentResponse(BaseModel):
    """Outcome of a payment; applied is false when it had already been recorded"""

    applied: bool
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    bill_id: Optional[str] = None
    installment_id: Optional[str] = None
    next_due_date: Optional[date] = None
    detail: Optional[str] = None


class PurchaseRequest(BaseModel):
    """Request body for POST /v1/credit/purchases"""

    user_id: str = Field(..., min_length=1)
    card_account_id: str
    title: str = Field(..., min_length=1)
    total_amount: Decimal = Field(..., gt=0, decimal_places=2)
    installment_count: int = Field(..., ge=1)
    base_date: date


class CardPaymentRequest(BaseModel):
    """Request body for POST /v1/credit/card-payments"""

    user_id: str = Field(..., min_length=1)
    card_account_id: str
    title: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    due_date: date


class InstallmentSchema(BaseModel):
    """Single credit installment"""

    installment_id: str
    card_account_id: str
    purchase_id: Optional[str] = None
    title: str
    amount: Decimal
    installment_number: int
    total_installments: int
    due_date: date
    paid: bool


class InstallmentsResponse(BaseModel):
    user_id: str
    installments: List[InstallmentSchema]
