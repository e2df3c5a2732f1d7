import math
from datetime import date
from typing import Iterable, Sequence

from errors import ValidationError
from models import Category

ALLOCATION_EPSILON = 0.001


def validate_period_bounds(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError("End date cannot be before start date.")


def validate_overall_amount(amount: float) -> None:
    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Overall budget amount must be positive.")


def validate_allocations(
    allocations: Sequence[tuple[Category, float]], overall_amount: float
) -> None:
    messages: list[str] = []
    if any(
        not math.isfinite(amount) or amount <= 0 for _category, amount in allocations
    ):
        messages.append("Category budget amount must be positive.")

    categories = [category for category, _amount in allocations]
    if len(categories) != len(set(categories)):
        messages.append("Categories within a budget must be unique.")

    total = sum(amount for _category, amount in allocations)
    if allocations and total > overall_amount + ALLOCATION_EPSILON:
        messages.append(
            "Total amount for category budgets cannot exceed the overall budget amount."
        )

    if messages:
        raise ValidationError(" ".join(messages))


def clean_name(value: str, label: str, max_length: int = 100) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{label} is required.")
    if len(name) > max_length:
        raise ValidationError(f"{label} cannot exceed {max_length} characters.")
    return name


def positive_amount(value: float, message: str) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        raise ValidationError(message)
    return float(value)


def join_messages(messages: Iterable[str]) -> str:
    return " ".join(m.strip() for m in messages if m and m.strip())
