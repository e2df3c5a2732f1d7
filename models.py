from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class Category(str, Enum):
    groceries = "Groceries"
    restaurants = "Restaurants"
    transport = "Transport"
    services = "Services"
    cashback = "Cashback"
    credit = "Credit"
    subscription = "Subscription"
    entertainment = "Entertainment"
    gift = "Gift"
    rent = "Rent"
    other = "Other"


CATEGORY_ENUM = SAEnum(
    Category,
    name="category",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class CycleType(str, Enum):
    monthly = "monthly"
    weekly = "weekly"
    custom = "custom"


def Money() -> Numeric:
    return Numeric(12, 2, asdecimal=False)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    profile_image_url: Mapped[Optional[str]] = mapped_column(String(500))
    reset_token: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    reset_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="My Budget")
    overall_amount: Mapped[float] = mapped_column(Money(), nullable=False)
    cycle_type: Mapped[CycleType] = mapped_column(SAEnum(CycleType), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    category_allocations: Mapped[list["BudgetAllocation"]] = relationship(
        "BudgetAllocation",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetAllocation.position",
    )

    __table_args__ = (
        CheckConstraint("overall_amount > 0", name="ck_budget_amount_positive"),
        CheckConstraint("end_date >= start_date", name="ck_budget_dates_ordered"),
        Index("ix_budgets_user_start", "user_id", "start_date"),
    )


class BudgetAllocation(Base):
    __tablename__ = "budget_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[Category] = mapped_column(CATEGORY_ENUM, nullable=False)
    amount: Mapped[float] = mapped_column(Money(), nullable=False)

    budget: Mapped["Budget"] = relationship(
        "Budget", back_populates="category_allocations"
    )

    __table_args__ = (
        UniqueConstraint("budget_id", "category", name="uq_allocation_budget_category"),
        CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
    )


class Subscription(Base, TimestampMixin):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[float] = mapped_column(Money(), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    next_billing_date: Mapped[date] = mapped_column(Date, nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(200))

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="subscription"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_subscription_amount_positive"),
        Index("ix_subscriptions_user_next", "user_id", "next_billing_date"),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(200))
    category: Mapped[Category] = mapped_column(CATEGORY_ENUM, nullable=False)
    amount: Mapped[float] = mapped_column(Money(), nullable=False)
    date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    subscription_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="SET NULL")
    )
    billing_date: Mapped[Optional[date]] = mapped_column(Date)

    subscription: Mapped[Optional["Subscription"]] = relationship(
        "Subscription", back_populates="expenses"
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "subscription_id",
            "billing_date",
            name="uq_expense_subscription_billing",
        ),
        Index("ix_expenses_user_date", "user_id", "date"),
        Index("ix_expenses_user_category_date", "user_id", "category", "date"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )
