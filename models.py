from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class IncomeType(str, Enum):
    salary = "salary"
    freelance = "freelance"
    dividend = "dividend"
    rental = "rental"
    rsu_vesting = "rsu_vesting"
    other = "other"


class VestPeriod(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    semi_annual = "semi_annual"
    annual = "annual"


class ExpenseCategory(str, Enum):
    housing = "housing"
    transport = "transport"
    utilities = "utilities"
    subscriptions = "subscriptions"
    loan = "loan"
    other = "other"


class InvestmentType(str, Enum):
    sip = "sip"
    voluntary = "voluntary"


class InvestmentCategory(str, Enum):
    mutual_fund = "mutual_fund"
    stocks = "stocks"
    crypto = "crypto"
    other = "other"


class InvestmentStatus(str, Enum):
    active = "active"
    paused = "paused"
    stopped = "stopped"


class DailyExpenseCategory(str, Enum):
    food = "food"
    groceries = "groceries"
    entertainment = "entertainment"
    shopping = "shopping"
    travel = "travel"
    health = "health"
    personal = "personal"
    other = "other"


class LedgerStatus(str, Enum):
    draft = "draft"
    finalized = "finalized"


class LedgerSection(str, Enum):
    incomes = "incomes"
    expenses = "expenses"
    investments = "investments"


class TemplateKind(str, Enum):
    income = "income"
    expense = "expense"
    investment = "investment"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


# Recurring templates


class Income(Base, TimestampMixin):
    __tablename__ = "incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    pre_tax_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    post_tax_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    tax_paid_cents: Mapped[Optional[int]] = mapped_column(Integer)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    type: Mapped[IncomeType] = mapped_column(
        SAEnum(IncomeType), nullable=False, default=IncomeType.salary
    )
    units: Mapped[Optional[float]] = mapped_column(Float)
    unit_price_cents: Mapped[Optional[int]] = mapped_column(Integer)
    vest_period: Mapped[Optional[VestPeriod]] = mapped_column(SAEnum(VestPeriod))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_incomes_user_active", "user_id", "is_active"),
        CheckConstraint("amount_cents >= 0", name="ck_incomes_amount_positive"),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    category: Mapped[ExpenseCategory] = mapped_column(
        SAEnum(ExpenseCategory), nullable=False, default=ExpenseCategory.other
    )
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_expenses_user_active", "user_id", "is_active"),
        CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[InvestmentType] = mapped_column(SAEnum(InvestmentType), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    platform: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    category: Mapped[InvestmentCategory] = mapped_column(
        SAEnum(InvestmentCategory),
        nullable=False,
        default=InvestmentCategory.mutual_fund,
    )
    status: Mapped[InvestmentStatus] = mapped_column(
        SAEnum(InvestmentStatus), nullable=False, default=InvestmentStatus.active
    )

    __table_args__ = (
        Index("ix_investments_user_status", "user_id", "status"),
        CheckConstraint("amount_cents >= 0", name="ck_investments_amount_positive"),
    )


class DailyExpense(Base, TimestampMixin):
    __tablename__ = "daily_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    vendor: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    category: Mapped[DailyExpenseCategory] = mapped_column(
        SAEnum(DailyExpenseCategory), nullable=False, default=DailyExpenseCategory.other
    )
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_daily_expenses_user_date", "user_id", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_daily_expenses_amount_positive"),
    )


class UserSettings(Base, TimestampMixin):
    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)


class ExchangeRate(Base, TimestampMixin):
    __tablename__ = "exchange_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    rate_micros: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "currency_code", name="uq_exchange_rate_user_code"),
        CheckConstraint("rate_micros > 0", name="ck_exchange_rate_positive"),
    )


# Monthly ledger


class MonthlyLedger(Base, TimestampMixin):
    __tablename__ = "monthly_ledgers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    status: Mapped[LedgerStatus] = mapped_column(
        SAEnum(LedgerStatus), nullable=False, default=LedgerStatus.draft
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    incomes: Mapped[list["LedgerIncomeItem"]] = relationship(
        "LedgerIncomeItem",
        cascade="all, delete-orphan",
        order_by="LedgerIncomeItem.id",
    )
    expenses: Mapped[list["LedgerExpenseItem"]] = relationship(
        "LedgerExpenseItem",
        cascade="all, delete-orphan",
        order_by="LedgerExpenseItem.id",
    )
    investments: Mapped[list["LedgerInvestmentItem"]] = relationship(
        "LedgerInvestmentItem",
        cascade="all, delete-orphan",
        order_by="LedgerInvestmentItem.id",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_ledger_user_month"),
    )


class LedgerIncomeItem(Base):
    __tablename__ = "ledger_income_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ledger_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_ledgers.id", ondelete="CASCADE"), nullable=False
    )
    # Provenance only: no foreign key to incomes.
    source_id: Mapped[Optional[int]] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    pre_tax_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    post_tax_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    tax_paid_cents: Mapped[Optional[int]] = mapped_column(Integer)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    type: Mapped[IncomeType] = mapped_column(
        SAEnum(IncomeType), nullable=False, default=IncomeType.salary
    )
    units: Mapped[Optional[float]] = mapped_column(Float)
    unit_price_cents: Mapped[Optional[int]] = mapped_column(Integer)
    vest_period: Mapped[Optional[VestPeriod]] = mapped_column(SAEnum(VestPeriod))

    __table_args__ = (
        Index("ix_ledger_income_items_ledger", "ledger_id"),
        CheckConstraint("amount_cents >= 0", name="ck_ledger_income_amount_positive"),
    )


class LedgerExpenseItem(Base):
    __tablename__ = "ledger_expense_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ledger_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_ledgers.id", ondelete="CASCADE"), nullable=False
    )
    source_id: Mapped[Optional[int]] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    category: Mapped[ExpenseCategory] = mapped_column(
        SAEnum(ExpenseCategory), nullable=False, default=ExpenseCategory.other
    )
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_ledger_expense_items_ledger", "ledger_id"),
        CheckConstraint("amount_cents >= 0", name="ck_ledger_expense_amount_positive"),
    )


class LedgerInvestmentItem(Base):
    __tablename__ = "ledger_investment_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ledger_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_ledgers.id", ondelete="CASCADE"), nullable=False
    )
    source_id: Mapped[Optional[int]] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[InvestmentType] = mapped_column(SAEnum(InvestmentType), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    platform: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    category: Mapped[InvestmentCategory] = mapped_column(
        SAEnum(InvestmentCategory),
        nullable=False,
        default=InvestmentCategory.mutual_fund,
    )
    status: Mapped[InvestmentStatus] = mapped_column(
        SAEnum(InvestmentStatus), nullable=False, default=InvestmentStatus.active
    )

    __table_args__ = (
        Index("ix_ledger_investment_items_ledger", "ledger_id"),
        CheckConstraint(
            "amount_cents >= 0", name="ck_ledger_investment_amount_positive"
        ),
    )


class MonthlySnapshot(Base, TimestampMixin):
    __tablename__ = "monthly_snapshots"
    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_snapshot_user_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False)
    total_income_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_expenses_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sips_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_voluntary_investments_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    daily_expenses_total_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    remaining_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
