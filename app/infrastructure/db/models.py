"""
SQLAlchemy ORM models
"""
from decimal import Decimal
from datetime import date as date_type, datetime
from sqlalchemy import String, Integer, SmallInteger, Text, TIMESTAMP, Date, func, Boolean, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from app.infrastructure.db.session import Base


def _money(nullable: bool = False, server_default: str | None = "0"):
    return mapped_column(
        Numeric(precision=12, scale=2),
        nullable=nullable,
        server_default=server_default,
    )


class User(Base):
    """
    Account owner. Authentication happens upstream; the session only
    carries the user id.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


# ============================================================================
# Customers
# ============================================================================


class CustomerModel(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    company: Mapped[str | None] = mapped_column(String(200), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    cep: Mapped[str | None] = mapped_column(String(10), nullable=True)
    cpf_cnpj: Mapped[str | None] = mapped_column(String(14), nullable=True)  # digits only
    client_type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="individual")  # individual, company
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


# ============================================================================
# Quotes & Sales
# ============================================================================


class QuoteModel(Base):
    __tablename__ = "quotes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    quote_number: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    subtotal: Mapped[Decimal] = _money()
    discount: Mapped[Decimal] = _money()
    total: Mapped[Decimal] = _money()
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="draft")  # draft, sent, approved, rejected
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    valid_until: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class QuoteItemModel(Base):
    __tablename__ = "quote_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    quote_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=3), nullable=False, server_default="1")
    unit_price: Mapped[Decimal] = _money()
    total: Mapped[Decimal] = _money()


class SaleModel(Base):
    """
    One-time transaction. payment_status is derived from the sale's
    financial entries and never edited directly.
    """
    __tablename__ = "sales"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    sale_number: Mapped[str] = mapped_column(String(32), nullable=False)
    quote_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    customer_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    subtotal: Mapped[Decimal] = _money()
    discount: Mapped[Decimal] = _money()
    total: Mapped[Decimal] = _money()

    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, server_default="open")  # pix, cash, card, transfer, open, installments
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")  # pending, partial, paid
    installment_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, server_default="1")
    # [{"number", "amount", "dueDate", "paymentMethod"}]
    installments_data: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    payment_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    sold_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class SaleItemModel(Base):
    __tablename__ = "sale_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sale_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=3), nullable=False, server_default="1")
    unit_price: Mapped[Decimal] = _money()
    total: Mapped[Decimal] = _money()


# ============================================================================
# Ledger
# ============================================================================


class FinancialEntry(Base):
    """
    Obligation: one expected or realized cash movement.

    Invariants:
    - 0 <= remaining_amount <= amount
    - payment_status == "paid" iff remaining_amount == 0 and paid_at is set
    - payment_status == "partial" iff 0 < remaining_amount < original_amount
    """
    __tablename__ = "financial_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # income, expense
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = _money(server_default=None)
    original_amount: Mapped[Decimal] = _money(server_default=None)
    remaining_amount: Mapped[Decimal] = _money()

    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")  # pending, partial, paid
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, server_default="open")  # pix, cash, card, transfer, open
    due_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    customer_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    sale_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    installments: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    current_installment: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    # Paid slice split off an open entry by a partial payment
    is_partial_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    partial_of_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index("ix_financial_entries_account_type_status", "account_id", "type", "payment_status"),
    )


# ============================================================================
# Subscriptions
# ============================================================================


class SubscriptionModel(Base):
    """
    Recurring monthly income source. Periods are derived, not stored,
    until a payment or skip materializes a SubscriptionPaymentModel.
    """
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    customer_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    monthly_value: Mapped[Decimal] = _money(server_default=None)
    start_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    end_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    payment_day: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)  # 1..31, None = last business day
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class SubscriptionPaymentModel(Base):
    """Materialized subscription period (paid, skipped or reverted to pending)."""
    __tablename__ = "subscription_payments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    year: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    month: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    amount: Mapped[Decimal] = _money(server_default=None)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")  # pending, paid, skipped
    payment_method: Mapped[str | None] = mapped_column(String(16), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    is_skipped: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    skip_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    financial_entry_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("subscription_id", "year", "month", name="uq_subscription_period"),
    )
