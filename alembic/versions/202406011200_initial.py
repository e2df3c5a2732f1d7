"""initial schema: users, budgets, allocations, subscriptions, expenses

Revision ID: 202406011200
Revises:
Create Date: 2024-06-01 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202406011200"
down_revision = None
branch_labels = None
depends_on = None

CATEGORY_VALUES = (
    "Groceries",
    "Restaurants",
    "Transport",
    "Services",
    "Cashback",
    "Credit",
    "Subscription",
    "Entertainment",
    "Gift",
    "Rent",
    "Other",
)


def _money():
    return sa.Numeric(precision=12, scale=2, asdecimal=False)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=128), nullable=False),
        sa.Column("profile_image_url", sa.String(length=500)),
        sa.Column("reset_token", sa.String(length=64)),
        sa.Column("reset_expires_at", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_users_reset_token", "users", ["reset_token"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("overall_amount", _money(), nullable=False),
        sa.Column(
            "cycle_type",
            sa.Enum("monthly", "weekly", "custom", name="cycletype"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("overall_amount > 0", name="ck_budget_amount_positive"),
        sa.CheckConstraint("end_date >= start_date", name="ck_budget_dates_ordered"),
    )
    op.create_index("ix_budgets_user_start", "budgets", ["user_id", "start_date"])

    op.create_table(
        "budget_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "budget_id",
            sa.Integer(),
            sa.ForeignKey("budgets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("category", sa.Enum(*CATEGORY_VALUES, name="category"), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.UniqueConstraint(
            "budget_id", "category", name="uq_allocation_budget_category"
        ),
        sa.CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("next_billing_date", sa.Date(), nullable=False),
        sa.Column("icon", sa.String(length=200)),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_subscription_amount_positive"),
    )
    op.create_index(
        "ix_subscriptions_user_next", "subscriptions", ["user_id", "next_billing_date"]
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=200)),
        sa.Column("category", sa.Enum(*CATEGORY_VALUES, name="category"), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column(
            "subscription_id",
            sa.Integer(),
            sa.ForeignKey("subscriptions.id", ondelete="SET NULL"),
        ),
        sa.Column("billing_date", sa.Date()),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id",
            "subscription_id",
            "billing_date",
            name="uq_expense_subscription_billing",
        ),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])
    op.create_index(
        "ix_expenses_user_category_date",
        "expenses",
        ["user_id", "category", "date"],
    )


def downgrade():
    op.drop_index("ix_expenses_user_category_date", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_subscriptions_user_next", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("budget_allocations")
    op.drop_index("ix_budgets_user_start", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_users_reset_token", table_name="users")
    op.drop_table("users")
