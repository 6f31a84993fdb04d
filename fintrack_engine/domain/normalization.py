"""Normalization of aggregator payloads into ledger terms"""

from decimal import Decimal
from typing import Optional

from fintrack_engine.domain.models import AccountType, ExternalAccount, ExternalTransaction, TransactionType

# Item statuses that mean the aggregator is still working on a refresh
PENDING_ITEM_STATUSES = frozenset({"UPDATING", "MERGING", "WAITING_USER_INPUT", "WAITING_USER_ACTION"})
USER_ACTION_ITEM_STATUSES = frozenset({"WAITING_USER_INPUT", "WAITING_USER_ACTION"})

# Transaction statuses that may still change and must not reach the ledger
NON_FINAL_TRANSACTION_STATUSES = frozenset({"PENDING"})

CREDIT_ACCOUNT_TYPES = frozenset({"CREDIT", "CREDIT_CARD"})

MAX_TITLE_LENGTH = 120
DEFAULT_TRANSACTION_TITLE = "Bank transaction"
DEFAULT_ACCOUNT_NAME = "Linked account"


def is_final(transaction: ExternalTransaction) -> bool:
    return (transaction.status or "").upper() not in NON_FINAL_TRANSACTION_STATUSES


def normalize_amount(amount: Optional[Decimal], indicator: Optional[str]) -> Optional[Decimal]:
    """
    Signed ledger amount from an unsigned aggregator amount and its debit/credit indicator.

    DEBIT -> negative, anything else -> positive. Returns None for missing amounts.
    """
    if amount is None:
        return None
    amount = Decimal(amount)
    if amount.is_nan():
        return None
    if (indicator or "").upper() == "DEBIT":
        return -abs(amount)
    return abs(amount)


def transaction_type_for(amount: Decimal) -> TransactionType:
    return TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME


def build_transaction_title(transaction: ExternalTransaction) -> str:
    """First non-blank of description, raw description, merchant name, business name"""
    for candidate in (
        transaction.description,
        transaction.description_raw,
        transaction.merchant_name,
        transaction.merchant_business_name,
    ):
        text = (candidate or "").strip()
        if text:
            if len(text) > MAX_TITLE_LENGTH:
                return f"{text[:MAX_TITLE_LENGTH - 3]}..."
            return text
    return DEFAULT_TRANSACTION_TITLE


def build_account_name(account: ExternalAccount) -> str:
    """
    Display name for an aggregator account.

    Examples:
        name="Nubank", number="12345678" -> "Nubank ••••5678"
        name="Nubank", type="CHECKING"   -> "Nubank • checking"
    """
    name = (account.name or "").strip() or DEFAULT_ACCOUNT_NAME
    if account.number and len(account.number) >= 4:
        return f"{name} ••••{account.number[-4:]}"
    if account.type:
        return f"{name} • {account.type.lower()}"
    return name


def normalize_name(value: Optional[str]) -> str:
    """Case- and whitespace-insensitive comparison key"""
    return " ".join((value or "").split()).casefold()


def map_account_type(account: ExternalAccount) -> AccountType:
    if (account.type or "").upper() in CREDIT_ACCOUNT_TYPES:
        return AccountType.CREDIT
    return AccountType.BANK
