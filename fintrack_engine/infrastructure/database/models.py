"""SQLAlchemy ORM models for the ledger, connections, bills and installments"""

import uuid
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

Money = Numeric(14, 2)


class Account(Base):
    """Internal ledger account"""

    __tablename__ = "accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="bank")  # bank | credit | cash | e-wallet | investment
    balance = Column(Money, nullable=False, default=0)
    institution = Column(Text, nullable=True)
    available_credit_limit = Column(Money, nullable=True)  # credit accounts only
    connection_id = Column(Uuid, ForeignKey("connections.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    connection = relationship("Connection", back_populates="accounts")


class Connection(Base):
    """One linked aggregator item"""

    __tablename__ = "connections"
    __table_args__ = (UniqueConstraint("user_id", "external_item_id", name="uq_connection_item"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    external_item_id = Column(Text, nullable=False)
    institution_name = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending | active | error
    last_error = Column(Text, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    last_processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    accounts = relationship("Account", back_populates="connection")
    links = relationship("AccountLink", back_populates="connection", cascade="all, delete-orphan")


class AccountLink(Base):
    """Explicit mapping from an aggregator account to an internal account"""

    __tablename__ = "account_links"

    connection_id = Column(Uuid, ForeignKey("connections.id", ondelete="CASCADE"), primary_key=True)
    external_account_id = Column(Text, primary_key=True)
    account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)

    connection = relationship("Connection", back_populates="links")


class AppliedExternalTransaction(Base):
    """Idempotency watermark: external transaction ids already applied per connection"""

    __tablename__ = "applied_external_transactions"

    connection_id = Column(Uuid, ForeignKey("connections.id", ondelete="CASCADE"), primary_key=True)
    external_id = Column(Text, primary_key=True)
    applied_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LedgerTransaction(Base):
    """Ledger entry; id equals the external id for aggregator-sourced rows"""

    __tablename__ = "transactions"

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Text, nullable=False, index=True)
    title = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    date = Column(Date, nullable=False)
    type = Column(String(10), nullable=False)  # income | expense
    account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    category_id = Column(Text, nullable=True)
    source = Column(String(20), nullable=False, default="manual")  # manual | aggregator | bill | installment
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RecurringBill(Base):
    """Scheduled obligation with an optimistic version for cycle advancement"""

    __tablename__ = "recurring_bills"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    title = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    frequency = Column(String(10), nullable=False)  # weekly | monthly | yearly
    start_date = Column(Date, nullable=True)
    next_due_date = Column(Date, nullable=True)
    last_paid_cycle_due_date = Column(Date, nullable=True)
    account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    category_id = Column(Text, nullable=True)
    payment_method = Column(String(10), nullable=True)  # Credit | Debit | Cash | Pix
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}


class CreditInstallment(Base):
    """One scheduled slice of a credit-funded purchase or bill"""

    __tablename__ = "credit_installments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    card_account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    purchase_id = Column(Uuid, nullable=True, index=True)
    title = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    installment_number = Column(Integer, nullable=False, default=1)
    total_installments = Column(Integer, nullable=False, default=1)
    due_date = Column(Date, nullable=False)
    paid = Column(Boolean, nullable=False, default=False)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    # Set for installments scheduled from a recurring bill; unique per cycle
    idempotency_key = Column(Text, nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
