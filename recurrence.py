import logging
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Category, Expense, Subscription
from periods import add_months

logger = logging.getLogger(__name__)

# Billed expenses are timestamped at midday so the day survives timezone shifts.
BILLING_TIME = time(12, 0)


def next_billing_date(current: date) -> date:
    return add_months(current, 1)


@dataclass(frozen=True)
class BillingResult:
    subscription: Subscription
    expense: Expense
    billed_on: date
    created: bool


class BillingEngine:
    """
    Records a subscription payment as an expense and rolls the billing date
    forward. Both changes are flushed in the caller's session; committing or
    rolling back is the caller's decision.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def bill(self, subscription: Subscription) -> BillingResult:
        billed_on = subscription.next_billing_date
        expense = self._existing_expense(subscription, billed_on)
        created = expense is None
        if expense is None:
            expense = Expense(
                user_id=subscription.user_id,
                name=subscription.name,
                category=Category.subscription,
                amount=subscription.amount,
                date=datetime.combine(billed_on, BILLING_TIME),
                icon=subscription.icon or "",
                subscription_id=subscription.id,
                billing_date=billed_on,
            )
            self.session.add(expense)
        else:
            logger.info(
                f"billing_reused: subscription={subscription.id} billed_on={billed_on}"
            )

        subscription.next_billing_date = next_billing_date(billed_on)
        self.session.flush()
        return BillingResult(
            subscription=subscription,
            expense=expense,
            billed_on=billed_on,
            created=created,
        )

    def _existing_expense(self, subscription: Subscription, billed_on: date):
        stmt = (
            select(Expense)
            .where(
                Expense.user_id == subscription.user_id,
                Expense.subscription_id == subscription.id,
                Expense.billing_date == billed_on,
            )
            .limit(1)
        )
        return self.session.scalar(stmt)
