"""Domain models - pure Python dataclasses and enums representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class Frequency(str, Enum):
    """Recurrence of a bill's obligation"""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentMethod(str, Enum):
    """How a bill is paid"""

    CREDIT = "Credit"
    DEBIT = "Debit"
    CASH = "Cash"
    PIX = "Pix"

    @property
    def requires_account(self) -> bool:
        # Cash is the only method that is not drawn from an account
        return self is not PaymentMethod.CASH


CREDIT_PAYMENT_METHOD = PaymentMethod.CREDIT


class AccountType(str, Enum):
    BANK = "bank"
    CREDIT = "credit"
    CASH = "cash"
    E_WALLET = "e-wallet"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ERROR = "error"


class BillStatus(str, Enum):
    PAID = "Paid"
    PENDING = "Pending"
    OVERDUE = "Overdue"


class SyncMode(str, Enum):
    """Silent runs only log failures; interactive runs surface them"""

    SILENT = "silent"
    INTERACTIVE = "interactive"


@dataclass
class ExternalItem:
    """Linked institution session as reported by the aggregator"""

    id: str
    status: str
    institution_name: Optional[str] = None
    last_updated_at: Optional[datetime] = None


@dataclass
class ExternalAccount:
    """Account summary from the aggregator"""

    id: str
    name: Optional[str]
    type: Optional[str]
    number: Optional[str] = None
    balance: Optional[Decimal] = None
    currency: Optional[str] = None


@dataclass
class ExternalTransaction:
    """Transaction from the aggregator, before normalization"""

    id: str
    account_id: str
    date: Optional[datetime]
    amount: Optional[Decimal]
    type: Optional[str]  # "DEBIT" or "CREDIT"
    status: Optional[str]  # "PENDING" or "POSTED"
    description: Optional[str] = None
    description_raw: Optional[str] = None
    merchant_name: Optional[str] = None
    merchant_business_name: Optional[str] = None


@dataclass
class InstallmentSlice:
    """One scheduled slice of a credit purchase"""

    installment_number: int
    total_installments: int
    due_date: date
    amount: Decimal


@dataclass
class BillPayment:
    """Arguments for recording a non-credit bill payment"""

    account_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_date: Optional[date] = None


@dataclass
class BillSummary:
    """Aggregate bill metrics for a user"""

    total: int = 0
    paid: int = 0
    pending: int = 0
    overdue: int = 0
    pending_amount: Decimal = Decimal("0")
    overdue_amount: Decimal = Decimal("0")


@dataclass
class SyncResult:
    """Outcome of syncing a single aggregator item"""

    item_id: str
    connection_id: Optional[str] = None
    item_status: Optional[str] = None
    refresh_timed_out: bool = False
    requires_user_action: bool = False
    accounts_mapped: int = 0
    transactions_applied: int = 0
    duplicates_avoided: int = 0
    last_processed_at: Optional[datetime] = None


@dataclass
class SyncOutcome:
    """Per-item entry of a multi-item sync run"""

    item_id: str
    ok: bool
    result: Optional[SyncResult] = None
    error: Optional[str] = None


@dataclass
class SyncRunReport:
    user_id: str
    mode: SyncMode
    outcomes: List[SyncOutcome] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)


@dataclass
class PaymentResult:
    """Outcome of recording a bill or installment payment"""

    transaction_id: str
    amount: Decimal
    bill_id: Optional[str] = None
    installment_id: Optional[str] = None
    next_due_date: Optional[date] = None
