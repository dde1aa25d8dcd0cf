"""initial schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name: str, *values: str) -> sa.Enum:
    # Stored as VARCHAR so several tables can share one enum without CREATE TYPE clashes
    return sa.Enum(*values, name=name, native_enum=False, length=max(len(v) for v in values))


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _owner(column: str = "user_id") -> sa.Column:
    return sa.Column(column, sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(length=50), nullable=False),
        sa.Column("last_name", sa.String(length=50), nullable=False),
        sa.Column("default_currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("monthly_budget", sa.Float(), nullable=False, server_default="0"),
        sa.Column("monthly_goal", sa.Float(), nullable=False, server_default="0"),
        sa.Column("email_alerts", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("weekly_reports", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("monthly_reports", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("budget_alerts", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("theme", _enum("theme", "light", "dark"), nullable=False, server_default="light"),
        sa.Column("date_format", _enum("dateformat", "mdy", "dmy", "iso"), nullable=False, server_default="mdy"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _owner(),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=False),
        sa.Column("type", _enum("categorytype", "expense", "income", "both"), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("monthly_budget", sa.Float(), nullable=True),
        sa.Column("budget_limit", sa.Float(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_categories_user_name"),
    )
    op.create_index("ix_categories_user_id", "categories", ["user_id"])
    op.create_index("ix_categories_parent_id", "categories", ["parent_id"])
    op.create_index("ix_categories_type", "categories", ["type"])
    op.create_index("ix_categories_is_active", "categories", ["is_active"])

    op.create_table(
        "recurring_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _owner(),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
        sa.Column("type", _enum("transactiontype", "expense", "income"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column(
            "frequency",
            _enum("frequency", "daily", "weekly", "monthly", "quarterly", "yearly"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("next_due_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_processed", sa.DateTime(), nullable=True),
        sa.Column("total_occurrences", sa.Integer(), nullable=True),
        sa.Column("current_occurrences", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("month_of_year", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_recurring_transactions_user_id", "recurring_transactions", ["user_id"])
    op.create_index("ix_recurring_transactions_next_due_date", "recurring_transactions", ["next_due_date"])
    op.create_index("ix_recurring_transactions_is_active", "recurring_transactions", ["is_active"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "recurring_transaction_id",
            sa.Integer(),
            sa.ForeignKey("recurring_transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("type", _enum("transactiontype", "expense", "income"), nullable=False),
        sa.Column(
            "payment_method",
            _enum("paymentmethod", "cash", "card", "bank_transfer", "digital_wallet", "other"),
            nullable=False,
        ),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("receipt_path", sa.String(), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_expenses_id", "expenses", ["id"])
    op.create_index("ix_expenses_user_id", "expenses", ["user_id"])
    op.create_index("ix_expenses_category_id", "expenses", ["category_id"])
    op.create_index("ix_expenses_type", "expenses", ["type"])
    op.create_index("ix_expenses_expense_date", "expenses", ["expense_date"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "month", "category_id", name="uq_budgets_user_month_category"),
    )
    op.create_index("ix_budgets_id", "budgets", ["id"])
    op.create_index("ix_budgets_user_id", "budgets", ["user_id"])
    op.create_index("ix_budgets_month", "budgets", ["month"])
    op.create_index("ix_budgets_category_id", "budgets", ["category_id"])

    op.create_table(
        "financial_goals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("target_amount", sa.Float(), nullable=False),
        sa.Column("current_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column(
            "category",
            _enum(
                "goalcategory",
                "emergency_fund",
                "vacation",
                "house",
                "car",
                "education",
                "retirement",
                "debt_payoff",
                "other",
            ),
            nullable=False,
        ),
        sa.Column("priority", _enum("goalpriority", "low", "medium", "high"), nullable=False),
        sa.Column("status", _enum("goalstatus", "active", "completed", "paused", "cancelled"), nullable=False),
        sa.Column("auto_save_amount", sa.Float(), nullable=True),
        sa.Column("auto_save_frequency", _enum("autosavefrequency", "daily", "weekly", "monthly"), nullable=True),
        sa.Column("reminder_enabled", sa.Boolean(), nullable=False),
        sa.Column("reminder_frequency", _enum("reminderfrequency", "weekly", "monthly"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_financial_goals_id", "financial_goals", ["id"])
    op.create_index("ix_financial_goals_user_id", "financial_goals", ["user_id"])
    op.create_index("ix_financial_goals_target_date", "financial_goals", ["target_date"])
    op.create_index("ix_financial_goals_status", "financial_goals", ["status"])

    op.create_table(
        "savings_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("goal_id", sa.Uuid(), sa.ForeignKey("financial_goals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column(
            "transaction_type", _enum("savingstransactiontype", "deposit", "withdrawal"), nullable=False
        ),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("transaction_date", sa.DateTime(), nullable=False),
        sa.Column("is_automatic", sa.Boolean(), nullable=False),
        sa.Column(
            "source",
            _enum("savingssource", "manual", "auto_save", "round_up", "goal_transfer"),
            nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index("ix_savings_transactions_id", "savings_transactions", ["id"])
    op.create_index("ix_savings_transactions_user_id", "savings_transactions", ["user_id"])
    op.create_index("ix_savings_transactions_goal_id", "savings_transactions", ["goal_id"])
    op.create_index("ix_savings_transactions_transaction_type", "savings_transactions", ["transaction_type"])
    op.create_index("ix_savings_transactions_transaction_date", "savings_transactions", ["transaction_date"])

    op.create_table(
        "split_groups",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner("creator_id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("members", sa.JSON(), nullable=False),
        sa.Column("total_expenses", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_split_groups_id", "split_groups", ["id"])
    op.create_index("ix_split_groups_creator_id", "split_groups", ["creator_id"])

    op.create_table(
        "expense_splits",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("expense_id", sa.Uuid(), sa.ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False),
        _owner("payer_id"),
        sa.Column("group_id", sa.Uuid(), sa.ForeignKey("split_groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("participant_email", sa.String(), nullable=False),
        sa.Column("participant_name", sa.String(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("percentage", sa.Float(), nullable=True),
        sa.Column("split_type", _enum("splittype", "equal", "percentage", "amount"), nullable=False),
        sa.Column("status", _enum("splitstatus", "pending", "accepted", "paid", "declined"), nullable=False),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("settled_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_expense_splits_id", "expense_splits", ["id"])
    op.create_index("ix_expense_splits_expense_id", "expense_splits", ["expense_id"])
    op.create_index("ix_expense_splits_payer_id", "expense_splits", ["payer_id"])
    op.create_index("ix_expense_splits_group_id", "expense_splits", ["group_id"])
    op.create_index("ix_expense_splits_participant_email", "expense_splits", ["participant_email"])
    op.create_index("ix_expense_splits_status", "expense_splits", ["status"])


def downgrade() -> None:
    for table in (
        "expense_splits",
        "split_groups",
        "savings_transactions",
        "financial_goals",
        "budgets",
        "expenses",
        "recurring_transactions",
        "categories",
        "users",
    ):
        op.drop_table(table)
