"""initial schema: templates, daily expenses, monthly ledgers, snapshots

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None


INCOME_TYPES = ("salary", "freelance", "dividend", "rental", "rsu_vesting", "other")
VEST_PERIODS = ("monthly", "quarterly", "semi_annual", "annual")
EXPENSE_CATEGORIES = (
    "housing",
    "transport",
    "utilities",
    "subscriptions",
    "loan",
    "other",
)
INVESTMENT_TYPES = ("sip", "voluntary")
INVESTMENT_CATEGORIES = ("mutual_fund", "stocks", "crypto", "other")
INVESTMENT_STATUSES = ("active", "paused", "stopped")
DAILY_CATEGORIES = (
    "food",
    "groceries",
    "entertainment",
    "shopping",
    "travel",
    "health",
    "personal",
    "other",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _income_columns():
    return [
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("pre_tax_amount_cents", sa.Integer()),
        sa.Column("post_tax_amount_cents", sa.Integer()),
        sa.Column("tax_paid_cents", sa.Integer()),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("type", sa.Enum(*INCOME_TYPES, name="incometype"), nullable=False),
        sa.Column("units", sa.Float()),
        sa.Column("unit_price_cents", sa.Integer()),
        sa.Column("vest_period", sa.Enum(*VEST_PERIODS, name="vestperiod")),
    ]


def _expense_columns():
    return [
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column(
            "category",
            sa.Enum(*EXPENSE_CATEGORIES, name="expensecategory"),
            nullable=False,
        ),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
    ]


def _investment_columns():
    return [
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column(
            "type", sa.Enum(*INVESTMENT_TYPES, name="investmenttype"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("platform", sa.String(length=120), nullable=False, server_default=""),
        sa.Column(
            "category",
            sa.Enum(*INVESTMENT_CATEGORIES, name="investmentcategory"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum(*INVESTMENT_STATUSES, name="investmentstatus"),
            nullable=False,
        ),
    ]


def upgrade():
    op.create_table(
        "incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        *_income_columns(),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_incomes_amount_positive"),
    )
    op.create_index("ix_incomes_user_active", "incomes", ["user_id", "is_active"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        *_expense_columns(),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_active", "expenses", ["user_id", "is_active"])

    op.create_table(
        "investments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        *_investment_columns(),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_investments_amount_positive"
        ),
    )
    op.create_index("ix_investments_user_status", "investments", ["user_id", "status"])

    op.create_table(
        "daily_expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("vendor", sa.String(length=120), nullable=False, server_default=""),
        sa.Column(
            "category",
            sa.Enum(*DAILY_CATEGORIES, name="dailyexpensecategory"),
            nullable=False,
        ),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_daily_expenses_amount_positive"
        ),
    )
    op.create_index("ix_daily_expenses_user_date", "daily_expenses", ["user_id", "date"])

    op.create_table(
        "user_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("base_currency", sa.String(length=3), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("rate_micros", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "currency_code", name="uq_exchange_rate_user_code"
        ),
        sa.CheckConstraint("rate_micros > 0", name="ck_exchange_rate_positive"),
    )

    op.create_table(
        "monthly_ledgers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column(
            "status",
            sa.Enum("draft", "finalized", name="ledgerstatus"),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "month", name="uq_ledger_user_month"),
    )

    op.create_table(
        "ledger_income_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ledger_id",
            sa.Integer(),
            sa.ForeignKey("monthly_ledgers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_id", sa.Integer()),
        *_income_columns(),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_ledger_income_amount_positive"
        ),
    )
    op.create_index(
        "ix_ledger_income_items_ledger", "ledger_income_items", ["ledger_id"]
    )

    op.create_table(
        "ledger_expense_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ledger_id",
            sa.Integer(),
            sa.ForeignKey("monthly_ledgers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_id", sa.Integer()),
        *_expense_columns(),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_ledger_expense_amount_positive"
        ),
    )
    op.create_index(
        "ix_ledger_expense_items_ledger", "ledger_expense_items", ["ledger_id"]
    )

    op.create_table(
        "ledger_investment_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ledger_id",
            sa.Integer(),
            sa.ForeignKey("monthly_ledgers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_id", sa.Integer()),
        *_investment_columns(),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_ledger_investment_amount_positive"
        ),
    )
    op.create_index(
        "ix_ledger_investment_items_ledger", "ledger_investment_items", ["ledger_id"]
    )

    op.create_table(
        "monthly_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False),
        sa.Column("total_income_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "total_expenses_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("total_sips_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "total_voluntary_investments_cents",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "daily_expenses_total_cents",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column("remaining_cents", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "month", name="uq_snapshot_user_month"),
    )


def downgrade():
    op.drop_table("monthly_snapshots")
    op.drop_index("ix_ledger_investment_items_ledger", table_name="ledger_investment_items")
    op.drop_table("ledger_investment_items")
    op.drop_index("ix_ledger_expense_items_ledger", table_name="ledger_expense_items")
    op.drop_table("ledger_expense_items")
    op.drop_index("ix_ledger_income_items_ledger", table_name="ledger_income_items")
    op.drop_table("ledger_income_items")
    op.drop_table("monthly_ledgers")
    op.drop_table("exchange_rates")
    op.drop_table("user_settings")
    op.drop_index("ix_daily_expenses_user_date", table_name="daily_expenses")
    op.drop_table("daily_expenses")
    op.drop_index("ix_investments_user_status", table_name="investments")
    op.drop_table("investments")
    op.drop_index("ix_expenses_user_active", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_incomes_user_active", table_name="incomes")
    op.drop_table("incomes")
