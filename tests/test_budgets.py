from datetime import date, datetime

import pytest
from pydantic import ValidationError as SchemaError
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import InvalidReference, NotFound, ValidationError
from models import Budget, BudgetAllocation, Category, CycleType, Expense
from schemas import BudgetIn, BudgetUpdate, CategoryAllocationIn, ExpenseIn
from services import BudgetService, ExpenseService
from validation import validate_allocations, validate_overall_amount


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def alloc(category: Category, amount: float) -> CategoryAllocationIn:
    return CategoryAllocationIn(category=category, amount=amount)


def monthly_budget(**overrides) -> BudgetIn:
    data = {
        "name": "Household",
        "overall_amount": 1000,
        "cycle_type": CycleType.monthly,
        "start_date": date(2024, 1, 15),
        "category_allocations": [
            alloc(Category.groceries, 400),
            alloc(Category.rent, 500),
        ],
    }
    data.update(overrides)
    return BudgetIn(**data)


def add_expense(session, user_id: int, category: Category, amount: float, when):
    return ExpenseService(session, user_id).create(
        ExpenseIn(name=f"{category.value} spend", category=category, amount=amount, date=when)
    )


def test_create_resolves_end_date_and_keeps_allocation_order() -> None:
    session = make_session()
    budget = BudgetService(session, 1).create(monthly_budget())

    assert budget.end_date == date(2024, 2, 14)
    assert [a.category for a in budget.category_allocations] == [
        Category.groceries,
        Category.rent,
    ]
    assert [a.amount for a in budget.category_allocations] == [400, 500]


def test_create_requires_core_fields() -> None:
    session = make_session()
    with pytest.raises(ValidationError, match="are required"):
        BudgetService(session, 1).create(BudgetIn(name="No amount", cycle_type="weekly"))


def test_create_rejects_non_positive_overall_amount() -> None:
    session = make_session()
    with pytest.raises(ValidationError, match="must be positive"):
        BudgetService(session, 1).create(
            monthly_budget(overall_amount=-5, category_allocations=[])
        )


def test_create_rejects_allocations_over_the_cap() -> None:
    session = make_session()
    with pytest.raises(ValidationError, match="cannot exceed the overall"):
        BudgetService(session, 1).create(
            monthly_budget(
                category_allocations=[
                    alloc(Category.groceries, 600),
                    alloc(Category.rent, 400.01),
                ]
            )
        )
    assert session.scalar(select(func.count(Budget.id))) == 0


def test_allocation_sum_within_tolerance_is_accepted() -> None:
    session = make_session()
    budget = BudgetService(session, 1).create(
        monthly_budget(
            overall_amount=100,
            category_allocations=[
                alloc(Category.groceries, 33.3334),
                alloc(Category.transport, 33.3333),
                alloc(Category.other, 33.3333),
            ],
        )
    )
    assert len(budget.category_allocations) == 3


def test_create_rejects_duplicate_categories() -> None:
    session = make_session()
    with pytest.raises(ValidationError, match="must be unique"):
        BudgetService(session, 1).create(
            monthly_budget(
                category_allocations=[
                    alloc(Category.groceries, 100),
                    alloc(Category.groceries, 50),
                ]
            )
        )


def test_create_custom_cycle_rejects_end_before_start() -> None:
    session = make_session()
    with pytest.raises(ValidationError, match="End date cannot be before start date"):
        BudgetService(session, 1).create(
            monthly_budget(
                cycle_type=CycleType.custom,
                start_date=date(2024, 5, 1),
                end_date=date(2024, 4, 30),
            )
        )


def test_create_custom_cycle_without_end_date_is_rejected() -> None:
    session = make_session()
    with pytest.raises(ValidationError, match="Custom end date is required"):
        BudgetService(session, 1).create(monthly_budget(cycle_type=CycleType.custom))


def test_update_start_date_recomputes_end_date() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())

    updated = budgets.update(budget.id, BudgetUpdate(start_date=date(2024, 3, 1)))
    assert updated.start_date == date(2024, 3, 1)
    assert updated.end_date == date(2024, 3, 31)
    assert updated.name == "Household"
    assert len(updated.category_allocations) == 2


def test_update_cycle_type_uses_effective_start_date() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())

    updated = budgets.update(budget.id, BudgetUpdate(cycle_type=CycleType.weekly))
    assert updated.end_date == date(2024, 1, 21)


def test_switching_to_custom_falls_back_to_previous_end_date() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())

    updated = budgets.update(budget.id, BudgetUpdate(cycle_type=CycleType.custom))
    assert updated.cycle_type == CycleType.custom
    assert updated.end_date == date(2024, 2, 14)

    extended = budgets.update(budget.id, BudgetUpdate(end_date=date(2024, 3, 31)))
    assert extended.end_date == date(2024, 3, 31)


def test_end_date_is_ignored_for_monthly_cycles_without_other_changes() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())

    updated = budgets.update(budget.id, BudgetUpdate(end_date=date(2024, 6, 1)))
    assert updated.end_date == date(2024, 2, 14)


def test_update_replaces_allocations_wholesale() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())

    updated = budgets.update(
        budget.id,
        BudgetUpdate(
            category_allocations=[
                alloc(Category.rent, 450),
                alloc(Category.groceries, 300),
            ]
        ),
    )
    assert [(a.category, a.amount) for a in updated.category_allocations] == [
        (Category.rent, 450),
        (Category.groceries, 300),
    ]
    assert session.scalar(select(func.count(BudgetAllocation.id))) == 2

    cleared = budgets.update(budget.id, BudgetUpdate(category_allocations=[]))
    assert cleared.category_allocations == []
    assert session.scalar(select(func.count(BudgetAllocation.id))) == 0


def test_update_revalidates_cap_against_new_overall_amount() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())

    with pytest.raises(ValidationError, match="cannot exceed the overall"):
        budgets.update(budget.id, BudgetUpdate(overall_amount=800))

    session.expire_all()
    stored = budgets.get(budget.id)
    assert stored.overall_amount == 1000


def test_update_rejects_duplicate_categories() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())

    with pytest.raises(ValidationError, match="must be unique"):
        budgets.update(
            budget.id,
            BudgetUpdate(
                category_allocations=[alloc(Category.gift, 10), alloc(Category.gift, 20)]
            ),
        )


def test_budgets_are_owner_scoped() -> None:
    session = make_session()
    budget = BudgetService(session, 1).create(monthly_budget())

    intruder = BudgetService(session, 2)
    with pytest.raises(NotFound):
        intruder.get_with_spend(budget.id)
    with pytest.raises(NotFound):
        intruder.update(budget.id, BudgetUpdate(name="Mine now"))
    with pytest.raises(NotFound):
        intruder.delete(budget.id)
    assert intruder.list_all() == []


def test_malformed_budget_id_is_an_invalid_reference() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    with pytest.raises(InvalidReference):
        budgets.get_with_spend("abc")
    with pytest.raises(InvalidReference):
        budgets.delete("-3")
    with pytest.raises(NotFound):
        budgets.get_with_spend("999")


def test_list_orders_by_start_desc_then_name_and_is_repeatable() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budgets.create(monthly_budget(name="Zeta", start_date=date(2024, 1, 1)))
    budgets.create(monthly_budget(name="Alpha", start_date=date(2024, 1, 1)))
    budgets.create(monthly_budget(name="Later", start_date=date(2024, 2, 1)))

    first = [(b.name, b.start_date) for b in budgets.list_all()]
    second = [(b.name, b.start_date) for b in budgets.list_all()]
    assert first == [
        ("Later", date(2024, 2, 1)),
        ("Alpha", date(2024, 1, 1)),
        ("Zeta", date(2024, 1, 1)),
    ]
    assert first == second


def test_spend_without_expenses_leaves_allocations_untouched() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())

    spend = budgets.get_with_spend(budget.id)
    assert spend.total_spent_overall == 0
    assert [(a.spent, a.remaining) for a in spend.category_allocations] == [
        (0, 400),
        (0, 500),
    ]


def test_spend_aggregates_window_per_category() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())  # 2024-01-15 .. 2024-02-14

    add_expense(session, 1, Category.groceries, 120.5, datetime(2024, 1, 15, 0, 0))
    add_expense(session, 1, Category.groceries, 300, datetime(2024, 2, 14, 21, 45))
    add_expense(session, 1, Category.rent, 500, datetime(2024, 2, 1, 9, 0))
    add_expense(session, 1, Category.transport, 42, datetime(2024, 1, 20, 8, 0))
    # outside the window or owned by someone else
    add_expense(session, 1, Category.groceries, 999, datetime(2024, 2, 15, 0, 0))
    add_expense(session, 1, Category.groceries, 999, datetime(2024, 1, 14, 23, 59))
    add_expense(session, 2, Category.groceries, 999, datetime(2024, 1, 20, 12, 0))

    spend = budgets.get_with_spend(str(budget.id))
    assert spend.total_spent_overall == 962.5

    by_category = {a.category: a for a in spend.category_allocations}
    assert by_category[Category.groceries].spent == 420.5
    assert by_category[Category.groceries].remaining == -20.5
    assert by_category[Category.rent].spent == 500
    assert by_category[Category.rent].remaining == 0

    session.expire_all()
    assert [a.amount for a in budgets.get(budget.id).category_allocations] == [400, 500]


def test_delete_does_not_touch_expenses() -> None:
    session = make_session()
    budgets = BudgetService(session, 1)
    budget = budgets.create(monthly_budget())
    add_expense(session, 1, Category.rent, 500, datetime(2024, 2, 1, 9, 0))

    budgets.delete(budget.id)

    assert budgets.list_all() == []
    assert session.scalar(select(func.count(BudgetAllocation.id))) == 0
    assert session.scalar(select(func.count(Expense.id))) == 1


@pytest.mark.parametrize("raw_id", ["²", "٣", "9" * 23, "0", " "])
def test_out_of_range_or_non_ascii_ids_are_invalid_references(raw_id) -> None:
    session = make_session()
    with pytest.raises(InvalidReference, match="Invalid budget ID format"):
        BudgetService(session, 1).get_with_spend(raw_id)


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_amounts_fail_budget_validation(value) -> None:
    with pytest.raises(ValidationError, match="must be positive"):
        validate_overall_amount(value)
    with pytest.raises(ValidationError, match="Category budget amount must be positive"):
        validate_allocations([(Category.groceries, value)], 1000)


@pytest.mark.parametrize("value", [float("nan"), float("inf")])
def test_budget_schema_rejects_non_finite_amounts(value) -> None:
    with pytest.raises(SchemaError):
        monthly_budget(overall_amount=value)
    with pytest.raises(SchemaError):
        alloc(Category.rent, value)


def test_null_allocations_on_create_mean_none() -> None:
    session = make_session()
    budget = BudgetService(session, 1).create(
        BudgetIn.model_validate(
            {
                "name": "Bare",
                "overallAmount": 250,
                "cycleType": "weekly",
                "startDate": "2024-01-01",
                "categoryAllocations": None,
            }
        )
    )
    assert budget.category_allocations == []
    assert budget.end_date == date(2024, 1, 7)
