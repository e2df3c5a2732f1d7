from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from config import Settings, get_settings
from errors import NotFound, ValidationError, parse_record_id
from mailer import Mailer
from models import (
    Budget,
    BudgetAllocation,
    Category,
    CycleType,
    Expense,
    Subscription,
    User,
)
from periods import (
    Window,
    day_bounds,
    days_in_month,
    last_n_days_window,
    local_now,
    month_to_date_window,
    parse_date,
    resolve_end_date,
)
from recurrence import BillingEngine
from schemas import BudgetIn, BudgetUpdate, ExpenseIn, SubscriptionIn
from spreadsheet import export_expenses
from tokens import generate_access_token, hash_password, verify_password
from validation import (
    clean_name,
    positive_amount,
    validate_allocations,
    validate_overall_amount,
    validate_period_bounds,
)

logger = logging.getLogger(__name__)

RecordId = Union[int, str]
RESET_TOKEN_TTL = timedelta(hours=1)
RESET_MESSAGE = "If that account exists, you'll receive reset instructions."


def round_money(value: float) -> float:
    return float(
        Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    )


def spent_by_category(
    session: Session, user_id: int, window: Window
) -> dict[Category, float]:
    stmt = (
        select(
            Expense.category,
            func.coalesce(func.sum(Expense.amount), 0).label("spent"),
        )
        .where(
            Expense.user_id == user_id,
            Expense.date >= window.start,
            Expense.date <= window.end,
        )
        .group_by(Expense.category)
    )
    return {
        row.category: round_money(float(row.spent or 0))
        for row in session.execute(stmt)
    }


@dataclass(frozen=True)
class AllocationSpend:
    id: int
    category: Category
    amount: float
    spent: float
    remaining: float


@dataclass(frozen=True)
class BudgetSpend:
    id: int
    name: str
    overall_amount: float
    cycle_type: CycleType
    start_date: date
    end_date: date
    created_at: datetime
    updated_at: datetime
    total_spent_overall: float
    category_allocations: list[AllocationSpend] = field(default_factory=list)


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, budget_id: RecordId) -> Budget:
        pk = parse_record_id(budget_id, "budget")
        budget = self.session.get(Budget, pk)
        if not budget or budget.user_id != self.user_id:
            raise NotFound("Budget not found or user not authorized.")
        return budget

    def list_all(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(selectinload(Budget.category_allocations))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.start_date.desc(), Budget.name.asc())
        )
        return self.session.scalars(stmt).all()

    def create(self, data: BudgetIn) -> Budget:
        if (
            not data.name
            or not data.name.strip()
            or not data.overall_amount
            or not data.cycle_type
            or not data.start_date
        ):
            raise ValidationError(
                "Name, overallAmount, cycleType, and startDate are required."
            )
        name = clean_name(data.name, "Budget name")
        validate_overall_amount(data.overall_amount)
        end_date = resolve_end_date(data.start_date, data.cycle_type, data.end_date)
        validate_period_bounds(data.start_date, end_date)

        allocations = [
            (a.category, a.amount) for a in data.category_allocations or []
        ]
        validate_allocations(allocations, data.overall_amount)

        budget = Budget(
            user_id=self.user_id,
            name=name,
            overall_amount=float(data.overall_amount),
            cycle_type=data.cycle_type,
            start_date=data.start_date,
            end_date=end_date,
            category_allocations=self._build_allocations(allocations),
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_created: id={budget.id} user={self.user_id} "
            f"cycle={budget.cycle_type.value} end={budget.end_date}"
        )
        return budget

    def update(self, budget_id: RecordId, data: BudgetUpdate) -> Budget:
        budget = self.get(budget_id)
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }

        name = budget.name
        if "name" in changes:
            name = clean_name(changes["name"], "Budget name")

        overall_amount = budget.overall_amount
        if "overall_amount" in changes:
            overall_amount = changes["overall_amount"]
            validate_overall_amount(overall_amount)

        start_date = changes.get("start_date", budget.start_date)
        cycle_type = changes.get("cycle_type", budget.cycle_type)
        end_date = budget.end_date
        custom_end = changes.get("end_date")
        if (
            "start_date" in changes
            or "cycle_type" in changes
            or (cycle_type == CycleType.custom and custom_end is not None)
        ):
            end_date = resolve_end_date(
                start_date, cycle_type, custom_end or budget.end_date
            )
        validate_period_bounds(start_date, end_date)

        if data.category_allocations is not None:
            allocations = [(a.category, a.amount) for a in data.category_allocations]
        else:
            allocations = [(a.category, a.amount) for a in budget.category_allocations]
        validate_allocations(allocations, overall_amount)

        budget.name = name
        budget.overall_amount = float(overall_amount)
        budget.start_date = start_date
        budget.cycle_type = cycle_type
        budget.end_date = end_date
        if data.category_allocations is not None:
            # Old rows must be gone before the replacements hit the unique index.
            budget.category_allocations.clear()
            self.session.flush()
            budget.category_allocations = self._build_allocations(allocations)

        self.session.commit()
        self.session.refresh(budget)
        logger.info(f"budget_updated: id={budget.id} fields={sorted(changes)}")
        return budget

    def delete(self, budget_id: RecordId) -> None:
        budget = self.get(budget_id)
        pk = budget.id
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"budget_deleted: id={pk} user={self.user_id}")

    def get_with_spend(self, budget_id: RecordId) -> BudgetSpend:
        budget = self.get(budget_id)
        window = day_bounds(budget.start_date, budget.end_date)
        spent = spent_by_category(self.session, self.user_id, window)

        allocations = []
        for alloc in budget.category_allocations:
            alloc_spent = spent.get(alloc.category, 0.0)
            allocations.append(
                AllocationSpend(
                    id=alloc.id,
                    category=alloc.category,
                    amount=alloc.amount,
                    spent=alloc_spent,
                    remaining=round_money(alloc.amount - alloc_spent),
                )
            )

        return BudgetSpend(
            id=budget.id,
            name=budget.name,
            overall_amount=budget.overall_amount,
            cycle_type=budget.cycle_type,
            start_date=budget.start_date,
            end_date=budget.end_date,
            created_at=budget.created_at,
            updated_at=budget.updated_at,
            total_spent_overall=round_money(sum(spent.values())),
            category_allocations=allocations,
        )

    @staticmethod
    def _build_allocations(
        allocations: list[tuple[Category, float]]
    ) -> list[BudgetAllocation]:
        return [
            BudgetAllocation(position=idx, category=category, amount=float(amount))
            for idx, (category, amount) in enumerate(allocations)
        ]


class ExpenseService:
    def __init__(
        self, session: Session, user_id: int, settings: Optional[Settings] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.settings = settings or get_settings()

    def create(self, data: ExpenseIn) -> Expense:
        name = clean_name(data.name, "Expense name")
        amount = positive_amount(data.amount, "Amount must be a positive number.")
        when = data.date
        if when.tzinfo is not None:
            when = when.astimezone(ZoneInfo(self.settings.timezone)).replace(
                tzinfo=None
            )

        expense = Expense(
            user_id=self.user_id,
            name=name,
            icon=data.icon,
            category=data.category,
            amount=amount,
            date=when,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def list_all(self) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.user_id == self.user_id)
            .order_by(
                Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc()
            )
        )
        return self.session.scalars(stmt).all()

    def delete(self, expense_id: RecordId) -> None:
        pk = parse_record_id(expense_id, "expense")
        expense = self.session.get(Expense, pk)
        if not expense or expense.user_id != self.user_id:
            raise NotFound("Expense not found or user not authorized.")
        self.session.delete(expense)
        self.session.commit()

    def export_xlsx(self) -> bytes:
        stmt = (
            select(Expense)
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc())
        )
        return export_expenses(self.session.scalars(stmt).all())


@dataclass(frozen=True)
class Payment:
    message: str
    subscription: Subscription
    expense: Expense


class SubscriptionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, subscription_id: RecordId) -> Subscription:
        pk = parse_record_id(subscription_id, "subscription")
        subscription = self.session.get(Subscription, pk)
        if not subscription or subscription.user_id != self.user_id:
            raise NotFound("Subscription not found")
        return subscription

    def list_all(self) -> list[Subscription]:
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == self.user_id)
            .order_by(Subscription.next_billing_date.asc(), Subscription.name.asc())
        )
        return self.session.scalars(stmt).all()

    def create(self, data: SubscriptionIn) -> Subscription:
        name = clean_name(data.name, "Subscription name")
        amount = positive_amount(data.amount, "A valid positive amount is required")
        subscription = Subscription(
            user_id=self.user_id,
            name=name,
            amount=amount,
            start_date=parse_date(data.start_date, "startDate"),
            next_billing_date=parse_date(data.next_billing_date, "nextBillingDate"),
            icon=data.icon or "",
        )
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)
        return subscription

    def delete(self, subscription_id: RecordId) -> int:
        subscription = self.get(subscription_id)
        pk = subscription.id
        self.session.delete(subscription)
        self.session.commit()
        return pk

    def pay(self, subscription_id: RecordId) -> Payment:
        subscription = self.get(subscription_id)
        try:
            result = BillingEngine(self.session).bill(subscription)
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception(f"subscription_pay_failed: id={subscription.id}")
            raise

        self.session.refresh(result.subscription)
        self.session.refresh(result.expense)
        next_date = result.subscription.next_billing_date.isoformat()
        logger.info(
            f"subscription_paid: id={subscription.id} billed_on={result.billed_on} "
            f"next={next_date} expense={result.expense.id} created={result.created}"
        )
        return Payment(
            message=(
                f"Subscription '{result.subscription.name}' paid and expense "
                f"recorded. Next billing: {next_date}"
            ),
            subscription=result.subscription,
            expense=result.expense,
        )


@dataclass(frozen=True)
class Forecast:
    total_spent: float
    average_daily: float
    days_so_far: int
    total_days_in_month: int
    forecast: float


class ReportService:
    def __init__(
        self, session: Session, user_id: int, settings: Optional[Settings] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.settings = settings or get_settings()

    def category_spending_last_30_days(
        self, now: Optional[datetime] = None
    ) -> dict[str, float]:
        now = now or local_now(self.settings)
        spent = spent_by_category(
            self.session, self.user_id, last_n_days_window(30, now)
        )
        return {
            category.value: amount for category, amount in spent.items() if amount
        }

    def forecast_monthly_spending(self, now: Optional[datetime] = None) -> Forecast:
        now = now or local_now(self.settings)
        window = month_to_date_window(now)
        total = sum(
            spent_by_category(self.session, self.user_id, window).values()
        )
        days_so_far = now.day
        total_days = days_in_month(now.year, now.month)
        average_daily = total / days_so_far if days_so_far > 0 else 0.0
        return Forecast(
            total_spent=round_money(total),
            average_daily=round_money(average_daily),
            days_so_far=days_so_far,
            total_days_in_month=total_days,
            forecast=round_money(average_daily * total_days),
        )


@dataclass(frozen=True)
class AuthResult:
    token: str
    user: User


class UserService:
    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def register(
        self,
        full_name: str,
        email: str,
        password: str,
        profile_image_url: Optional[str] = None,
    ) -> AuthResult:
        clean_email = (email or "").strip().lower()
        if not full_name.strip() or not clean_email or not password:
            raise ValidationError("All fields are required")
        if self._by_email(clean_email):
            raise ValidationError("Email already in use")

        user = User(
            full_name=full_name.strip(),
            email=clean_email,
            password_hash=hash_password(password),
            profile_image_url=profile_image_url,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: id={user.id}")
        return AuthResult(generate_access_token(user.id, self.settings), user)

    def login(self, email: str, password: str) -> AuthResult:
        user = self._by_email((email or "").strip().lower())
        if not user or not verify_password(password, user.password_hash):
            raise ValidationError("Invalid credentials")
        return AuthResult(generate_access_token(user.id, self.settings), user)

    def request_password_reset(
        self, email: str, mailer: Optional[Mailer] = None, now: Optional[datetime] = None
    ) -> str:
        user = self._by_email((email or "").strip().lower())
        if not user:
            return RESET_MESSAGE

        now = now or datetime.utcnow()
        token = secrets.token_hex(20)
        user.reset_token = token
        user.reset_expires_at = now + RESET_TOKEN_TTL
        self.session.commit()

        reset_url = f"{self.settings.client_url}/reset-password/{token}"
        text = (
            "You requested a password reset. Click here to reset your password:"
            f"\n\n{reset_url}"
        )
        mailer = mailer or Mailer(self.settings)
        try:
            mailer.send(user.email, "Password Reset", text)
        except Exception:
            logger.exception(f"password_reset_mail_failed: user={user.id}")
        logger.info(f"password_reset_requested: user={user.id}")
        return RESET_MESSAGE

    def reset_password(
        self, token: str, password: str, now: Optional[datetime] = None
    ) -> None:
        now = now or datetime.utcnow()
        stmt = select(User).where(
            User.reset_token == token, User.reset_expires_at > now
        )
        user = self.session.scalar(stmt) if token else None
        if not user:
            raise ValidationError("Invalid or expired token")
        user.password_hash = hash_password(password)
        user.reset_token = None
        user.reset_expires_at = None
        self.session.commit()
        logger.info(f"password_reset_completed: user={user.id}")

    def _by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return self.session.scalar(select(User).where(User.email == email))
