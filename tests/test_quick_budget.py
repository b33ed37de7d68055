import uuid
from types import SimpleNamespace

import pytest

from budget_engine.client.quick_budget import QuickBudgetMode, build_quick_budget_plan
from budget_engine.schemas import QuickBudgetContextRead


def _store(assigned, goals=None, context=None, selection=()):
    categories = [SimpleNamespace(id=category_id, name=name) for name, (category_id, _) in assigned.items()]
    allocations = {
        category_id: SimpleNamespace(assigned_cents=value, available_cents=value)
        for category_id, value in assigned.values()
    }
    return SimpleNamespace(
        month="2024-05",
        selection=list(selection),
        goals=goals or {},
        quick_budget=context or QuickBudgetContextRead(),
        active_categories=lambda: categories,
        allocation=lambda category_id, month=None: allocations.get(category_id),
    )


FOOD, FUN, RENT = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()


def test_underfunded_tops_up_goals():
    goals = {
        FOOD: SimpleNamespace(type="MFG", amount_cents=5000, target_month=None),
        RENT: SimpleNamespace(type="MFG", amount_cents=1000, target_month=None),
    }
    store = _store({"Food": (FOOD, 2000), "Fun": (FUN, 0), "Rent": (RENT, 1000)}, goals=goals)

    plan = build_quick_budget_plan(QuickBudgetMode.UNDERFUNDED, store)

    assert [(entry.category_id, entry.next_assigned_cents) for entry in plan.patch] == [(FOOD, 5000)]
    assert plan.diffs[0].delta == 3000
    assert plan.description == "Fill underfunded goals"


@pytest.mark.parametrize(
    "mode, field",
    [
        (QuickBudgetMode.BUDGETED_LAST_MONTH, "previous_assigned"),
        (QuickBudgetMode.SPENT_LAST_MONTH, "previous_activity"),
        (QuickBudgetMode.AVERAGE_BUDGETED, "average_assigned"),
        (QuickBudgetMode.AVERAGE_SPENT, "average_activity"),
    ],
)
def test_history_modes_read_their_own_figure(mode, field):
    context = QuickBudgetContextRead(**{field: {FOOD: 800, FUN: 0}})
    store = _store({"Food": (FOOD, 100), "Fun": (FUN, 0), "Rent": (RENT, 300)}, context=context)

    plan = build_quick_budget_plan(mode, store)

    # Fun already matches and Rent has no history
    assert [(diff.name, diff.from_cents, diff.to_cents) for diff in plan.diffs] == [("Food", 100, 800)]


def test_net_refunds_clamp_to_zero():
    context = QuickBudgetContextRead(previous_activity={FOOD: -250})
    store = _store({"Food": (FOOD, 400)}, context=context)

    plan = build_quick_budget_plan("SPENT_LAST_MONTH", store)

    assert plan.patch[0].next_assigned_cents == 0


def test_selection_limits_the_plan():
    context = QuickBudgetContextRead(previous_assigned={FOOD: 800, RENT: 900})
    store = _store({"Food": (FOOD, 0), "Rent": (RENT, 0)}, context=context, selection=[RENT])

    plan = build_quick_budget_plan(QuickBudgetMode.BUDGETED_LAST_MONTH, store)

    assert [diff.category_id for diff in plan.diffs] == [RENT]
    assert plan.total_delta == 900


def test_unknown_mode():
    with pytest.raises(ValueError):
        build_quick_budget_plan("EVERYTHING", _store({}))
