import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import Category, CycleType


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False
    )


class CamelOut(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class CategoryAllocationIn(CamelModel):
    category: Category
    amount: float


class BudgetIn(CamelModel):
    name: Optional[str] = None
    overall_amount: Optional[float] = None
    cycle_type: Optional[CycleType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_allocations: Optional[list[CategoryAllocationIn]] = None


class BudgetUpdate(CamelModel):
    name: Optional[str] = None
    overall_amount: Optional[float] = None
    cycle_type: Optional[CycleType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_allocations: Optional[list[CategoryAllocationIn]] = None


class ExpenseIn(CamelModel):
    name: str = Field(..., max_length=100)
    icon: Optional[str] = Field(default=None, max_length=200)
    category: Category
    amount: float
    date: dt.datetime

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: object) -> object:
        if isinstance(value, str) and len(value.strip()) == 10:
            return f"{value.strip()}T00:00:00"
        if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
            return dt.datetime.combine(value, dt.time.min)
        return value


class SubscriptionIn(CamelModel):
    name: str
    amount: float
    start_date: date
    next_billing_date: date
    icon: Optional[str] = Field(default=None, max_length=200)


class RegisterIn(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)
    profile_image_url: Optional[str] = Field(default=None, max_length=500)


class LoginIn(CamelModel):
    email: str
    password: str


class ForgotPasswordIn(CamelModel):
    email: str


class ResetPasswordIn(CamelModel):
    token: str
    password: str = Field(..., min_length=1)


class AllocationOut(CamelOut):
    id: int
    category: Category
    amount: float


class AllocationSpendOut(AllocationOut):
    spent: float
    remaining: float


class BudgetOut(CamelOut):
    id: int
    name: str
    overall_amount: float
    cycle_type: CycleType
    start_date: date
    end_date: date
    category_allocations: list[AllocationOut]
    created_at: datetime
    updated_at: datetime


class BudgetSpendOut(BudgetOut):
    category_allocations: list[AllocationSpendOut]
    total_spent_overall: float


class ExpenseOut(CamelOut):
    id: int
    name: str
    icon: Optional[str]
    category: Category
    amount: float
    date: datetime
    subscription_id: Optional[int] = None
    created_at: datetime


class SubscriptionOut(CamelOut):
    id: int
    name: str
    amount: float
    start_date: date
    next_billing_date: date
    icon: Optional[str]
    created_at: datetime
    updated_at: datetime


class PaymentOut(CamelOut):
    message: str
    subscription: SubscriptionOut
    expense: ExpenseOut


class ForecastOut(CamelOut):
    total_spent: float
    average_daily: float
    days_so_far: int
    total_days_in_month: int
    forecast: float


class UserOut(CamelOut):
    id: int
    full_name: str
    email: str
    profile_image_url: Optional[str]
    created_at: datetime


class AuthOut(CamelOut):
    token: str
    user: UserOut


class MessageOut(CamelOut):
    message: str
    id: Optional[int] = None
