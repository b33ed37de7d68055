import uuid

import pytest
from sqlmodel import select

from budget_engine.config import settings
from budget_engine.core.errors import BudgetValidationError, NotFoundError
from budget_engine.models.allocation import BudgetAllocation
from budget_engine.schemas import BulkAssignmentIn
from budget_engine.services import allocations as service


ORG_ID = uuid.UUID(settings.default_org_id)


def _stored(session, category, month):
    return session.exec(
        select(BudgetAllocation).where(
            BudgetAllocation.category_id == category.id,
            BudgetAllocation.month == month,
        )
    ).first()


def test_snapshot_materializes_rows_and_holds_invariant(session, make_category, add_transaction):
    groceries = make_category("Groceries")
    rent = make_category("Rent", group_name="Bills")
    add_transaction(10000, "2024-03-01", direction="inflow")
    add_transaction(2500, "2024-03-05", category=groceries)
    add_transaction(300, "2024-03-09", category=groceries, direction="inflow")
    add_transaction(999, "2024-03-10")

    service.upsert_allocation(session, ORG_ID, groceries.id, "2024-03", 4000)
    service.upsert_allocation(session, ORG_ID, rent.id, "2024-03", 3000)
    snapshot = service.load_snapshot(session, ORG_ID, "2024-03")

    by_id = {row.category_id: row for row in snapshot.allocations}
    assert len(by_id) == 2
    assert by_id[groceries.id].activity_cents == 2200
    for row in snapshot.allocations:
        assert row.available_cents == row.prev_available_cents + row.assigned_cents - row.activity_cents

    assert snapshot.inflows_cents == 10000
    assert snapshot.uncategorized_activity_cents == 999
    assert snapshot.total_assigned_cents == 7000
    assert snapshot.total_activity_cents == 2200
    assert snapshot.total_available_cents == sum(row.available_cents for row in snapshot.allocations)
    assert snapshot.ready_to_assign_cents == 3000


def test_snapshot_is_idempotent(session, make_category, add_transaction):
    category = make_category()
    add_transaction(1200, "2024-05-02", category=category)

    first = service.load_snapshot(session, ORG_ID, "2024-05")
    second = service.load_snapshot(session, ORG_ID, "2024-05")

    assert first.allocations == second.allocations
    rows = session.exec(select(BudgetAllocation)).all()
    assert len(rows) == 1


def test_snapshot_accepts_full_dates(session, make_category):
    make_category()
    assert service.load_snapshot(session, ORG_ID, "2024-05-17").month == "2024-05"
    with pytest.raises(BudgetValidationError):
        service.load_snapshot(session, ORG_ID, "2024-5")


def test_balance_rolls_into_next_month(session, make_category):
    category = make_category()
    service.upsert_allocation(session, ORG_ID, category.id, "2024-01", 5000)

    snapshot = service.load_snapshot(session, ORG_ID, "2024-02")

    row = snapshot.allocations[0]
    assert row.prev_available_cents == 5000
    assert row.available_cents == 5000


def test_rollover_off_starts_from_zero(session, make_category):
    category = make_category(rollover=False)
    service.upsert_allocation(session, ORG_ID, category.id, "2024-01", 5000)

    row = service.load_snapshot(session, ORG_ID, "2024-02").allocations[0]

    assert row.prev_available_cents == 0
    assert row.available_cents == 0


def test_earlier_change_propagates_to_stored_later_months(session, make_category):
    category = make_category()
    service.upsert_allocation(session, ORG_ID, category.id, "2024-01", 1000)
    service.upsert_allocation(session, ORG_ID, category.id, "2024-02", 500)
    service.upsert_allocation(session, ORG_ID, category.id, "2024-03", 0)
    assert _stored(session, category, "2024-03").available_cents == 1500

    service.upsert_allocation(session, ORG_ID, category.id, "2024-01", 4000)

    session.expire_all()
    assert _stored(session, category, "2024-02").available_cents == 4500
    assert _stored(session, category, "2024-03").available_cents == 4500


def test_upsert_rejects_bad_input_before_writing(session, make_category):
    category = make_category()
    with pytest.raises(BudgetValidationError):
        service.upsert_allocation(session, ORG_ID, category.id, "2024-01", -5)
    with pytest.raises(BudgetValidationError):
        service.upsert_allocation(session, ORG_ID, category.id, "January", 5)
    assert session.exec(select(BudgetAllocation)).all() == []


def test_upsert_unknown_category(session):
    with pytest.raises(NotFoundError):
        service.upsert_allocation(session, ORG_ID, uuid.uuid4(), "2024-01", 5)


def test_bulk_upsert_empty_touches_nothing(session, make_category):
    make_category()
    assert service.bulk_upsert_allocations(session, ORG_ID, "2024-01", []) == []
    assert session.exec(select(BudgetAllocation)).all() == []


def test_bulk_upsert_last_value_wins(session, make_category):
    food = make_category("Food")
    fun = make_category("Fun", group_name="Wants")

    rows = service.bulk_upsert_allocations(
        session,
        ORG_ID,
        "2024-01",
        [
            BulkAssignmentIn(categoryId=food.id, assigned_cents=100),
            BulkAssignmentIn(categoryId=fun.id, assigned_cents=200),
            BulkAssignmentIn(categoryId=food.id, assigned_cents=300),
        ],
    )

    assert [(row.category_id, row.assigned_cents) for row in rows] == [(food.id, 300), (fun.id, 200)]


def test_bulk_upsert_unknown_category_writes_nothing(session, make_category):
    food = make_category("Food")
    with pytest.raises(NotFoundError):
        service.bulk_upsert_allocations(
            session,
            ORG_ID,
            "2024-01",
            [
                BulkAssignmentIn(categoryId=food.id, assigned_cents=100),
                BulkAssignmentIn(categoryId=uuid.uuid4(), assigned_cents=200),
            ],
        )
    assert session.exec(select(BudgetAllocation)).all() == []


def test_apply_goal_tops_up_monthly_funding(session, make_category, make_goal):
    category = make_category()
    make_goal(category, type="MFG", amount_cents=5000)
    service.upsert_allocation(session, ORG_ID, category.id, "2024-04", 2000)

    result = service.apply_goal(session, ORG_ID, category.id, "2024-04")

    assert result.diff_cents == 3000
    assert result.allocation.assigned_cents == 5000

    again = service.apply_goal(session, ORG_ID, category.id, "2024-04")
    assert again.diff_cents == 0
    assert again.allocation.assigned_cents == 5000


def test_apply_goal_without_goal(session, make_category):
    category = make_category()
    with pytest.raises(NotFoundError):
        service.apply_goal(session, ORG_ID, category.id, "2024-04")


def test_quick_budget_context_uses_previous_months(session, make_category, add_transaction):
    category = make_category()
    service.upsert_allocation(session, ORG_ID, category.id, "2024-01", 900)
    service.upsert_allocation(session, ORG_ID, category.id, "2024-02", 300)
    service.upsert_allocation(session, ORG_ID, category.id, "2024-03", 600)
    add_transaction(450, "2024-03-12", category=category)

    context = service.load_snapshot(session, ORG_ID, "2024-04").quick_budget

    assert context.previous_assigned[category.id] == 600
    assert context.previous_activity[category.id] == 450
    assert context.average_assigned[category.id] == 600
    assert context.average_activity[category.id] == 150


def test_category_details(session, make_category, add_transaction):
    category = make_category()
    add_transaction(400, "2024-02-03", category=category)
    add_transaction(100, "2024-03-03", category=category)
    service.upsert_allocation(session, ORG_ID, category.id, "2024-02", 1000)
    service.upsert_allocation(session, ORG_ID, category.id, "2024-03", 500)

    details = service.category_details(session, ORG_ID, category.id, "2024-03")

    assert details.summary.cash_left_over_from_last_month_cents == 600
    assert details.summary.assigned_this_month_cents == 500
    assert details.summary.cash_spending_cents == 100
    assert details.auto_assign.assigned_last_month_cents == 1000
    assert details.auto_assign.spent_last_month_cents == 400
    assert details.auto_assign.average_assigned_cents == 500
    assert details.auto_assign.average_spent_cents == 167
