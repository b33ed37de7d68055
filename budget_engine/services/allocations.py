"""Month snapshots and allocation writes.

Every allocation row obeys ``available = previous available + assigned -
activity``. Activity is never taken from the client: it is summed from the
ledger (outflows minus categorized refunds) each time a row is computed.
Rows are materialized lazily when a month is read and, whenever a month's
available balance changes, the consecutive later rows of that category are
recomputed so stored balances keep chaining correctly.

Writes for the same (org, category, month) are last-write-wins; there is no
version token.
"""

import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from ..config import settings
from ..core.allocation_math import calculate_ready_to_assign, compute_available
from ..core.errors import NotFoundError
from ..core.goals import project_goal
from ..core.money import divide_rounded, to_cents
from ..core.months import month_bounds, next_month, normalize_month, previous_month, shift_month
from ..database import write_with_retry
from ..models.allocation import BudgetAllocation
from ..models.category import BudgetCategory
from ..models.transaction import AccountTransaction
from ..schemas import (
    AllocationRead,
    AutoAssignRead,
    BudgetSnapshotRead,
    BulkAssignmentIn,
    CategoryDetailsRead,
    CategoryRead,
    CategorySummaryRead,
    GoalApplyRead,
    GoalRead,
    QuickBudgetContextRead,
)
from .categories import ensure_seed_categories, find_goal, get_category, list_active_categories, list_goals


logger = logging.getLogger(__name__)

AVERAGE_WINDOW = 3


@dataclass
class LedgerTotals:
    activity: Dict[uuid.UUID, int] = field(default_factory=dict)
    uncategorized_activity: int = 0
    inflows: int = 0


def ledger_totals(
    session: Session,
    org_id: uuid.UUID,
    month: str,
    category_ids: Optional[Iterable[uuid.UUID]] = None,
) -> LedgerTotals:
    """Sum the month's transactions into per-category activity and inflows."""
    start, end = month_bounds(month)
    stmt = (
        select(
            AccountTransaction.category_id,
            AccountTransaction.direction,
            func.sum(AccountTransaction.amount_cents),
        )
        .where(
            AccountTransaction.org_id == org_id,
            AccountTransaction.occurred_on >= start,
            AccountTransaction.occurred_on < end,
            AccountTransaction.deleted_at.is_(None),
        )
        .group_by(AccountTransaction.category_id, AccountTransaction.direction)
    )
    if category_ids is not None:
        stmt = stmt.where(AccountTransaction.category_id.in_(list(category_ids)))

    totals = LedgerTotals()
    for category_id, direction, amount in session.exec(stmt).all():
        amount = max(int(amount or 0), 0)
        if amount == 0:
            continue
        if direction == "outflow":
            if category_id is None:
                totals.uncategorized_activity += amount
            else:
                totals.activity[category_id] = totals.activity.get(category_id, 0) + amount
        elif direction == "inflow":
            if category_id is None:
                totals.inflows += amount
            else:
                # A categorized inflow is a refund against that category
                totals.activity[category_id] = totals.activity.get(category_id, 0) - amount
    return totals


def _rows_for_month(
    session: Session,
    org_id: uuid.UUID,
    month: str,
    category_ids: Optional[Iterable[uuid.UUID]] = None,
) -> Dict[uuid.UUID, BudgetAllocation]:
    stmt = select(BudgetAllocation).where(
        BudgetAllocation.org_id == org_id,
        BudgetAllocation.month == month,
    )
    if category_ids is not None:
        stmt = stmt.where(BudgetAllocation.category_id.in_(list(category_ids)))
    return {row.category_id: row for row in session.exec(stmt).all()}


def _carried_balance(category: BudgetCategory, prev_row: Optional[BudgetAllocation]) -> int:
    if prev_row is None or not category.rollover:
        return 0
    return prev_row.available_cents


def _read(row: BudgetAllocation, prev_available: int) -> AllocationRead:
    return AllocationRead(
        category_id=row.category_id,
        month=row.month,
        assigned_cents=row.assigned_cents,
        activity_cents=row.activity_cents,
        available_cents=row.available_cents,
        prev_available_cents=prev_available,
    )


def _write_row(
    session: Session,
    org_id: uuid.UUID,
    category_id: uuid.UUID,
    month: str,
    existing: Optional[BudgetAllocation],
    assigned: int,
    activity: int,
    prev_available: int,
) -> BudgetAllocation:
    now = datetime.utcnow()
    row = existing
    if row is None:
        row = BudgetAllocation(
            id=uuid.uuid4(),
            org_id=org_id,
            category_id=category_id,
            month=month,
            created_at=now,
        )
    row.assigned_cents = assigned
    row.activity_cents = activity
    row.available_cents = compute_available(prev_available, assigned, activity)
    row.updated_at = now
    session.add(row)
    return row


def _propagate_forward(
    session: Session,
    org_id: uuid.UUID,
    category: BudgetCategory,
    month: str,
    available: int,
) -> int:
    """Re-chain the stored rows that follow ``month``. Returns rows changed.

    Only consecutive months are walked; a gap is materialized lazily when that
    month is read.
    """
    if not category.rollover:
        return 0
    # Month keys are zero-padded YYYY-MM, so string order is calendar order.
    later = session.exec(
        select(BudgetAllocation)
        .where(
            BudgetAllocation.org_id == org_id,
            BudgetAllocation.category_id == category.id,
            BudgetAllocation.month > month,
        )
        .order_by(BudgetAllocation.month.asc())
    ).all()

    changed = 0
    cursor = next_month(month)
    for row in later:
        if row.month != cursor:
            break
        desired = compute_available(available, row.assigned_cents, row.activity_cents)
        if desired != row.available_cents:
            row.available_cents = desired
            row.updated_at = datetime.utcnow()
            session.add(row)
            changed += 1
        available = row.available_cents
        cursor = next_month(cursor)
    return changed


# ─────────────────────────────
#   SNAPSHOT
# ─────────────────────────────

def load_snapshot(session: Session, org_id: uuid.UUID, month: str) -> BudgetSnapshotRead:
    """One consistent view of a month: categories, goals and allocations.

    Every active category gets a row for ``month``; missing or stale rows are
    written before returning so the next read finds them as-is.
    """
    t0 = time.perf_counter()
    month = normalize_month(month)
    logger.info("snapshot_start org=%s month=%s", org_id, month)

    if settings.seed_default_categories:
        ensure_seed_categories(session, org_id)

    categories = list_active_categories(session, org_id)
    category_ids = [category.id for category in categories]
    goals = list_goals(session, org_id, category_ids)

    ledger = ledger_totals(session, org_id, month)
    current_rows = _rows_for_month(session, org_id, month)
    prev_rows = _rows_for_month(session, org_id, previous_month(month))

    allocations: List[AllocationRead] = []
    synced = 0
    propagated = 0
    for category in categories:
        existing = current_rows.get(category.id)
        prev_available = _carried_balance(category, prev_rows.get(category.id))
        assigned = existing.assigned_cents if existing is not None else 0
        activity = ledger.activity.get(category.id, 0)
        available = compute_available(prev_available, assigned, activity)

        row = existing
        if existing is None or existing.activity_cents != activity or existing.available_cents != available:
            row = _write_row(session, org_id, category.id, month, existing, assigned, activity, prev_available)
            synced += 1
            propagated += _propagate_forward(session, org_id, category, month, row.available_cents)
        allocations.append(_read(row, prev_available))

    if synced:
        session.commit()
        logger.info("snapshot_rows_synced org=%s month=%s rows=%d propagated=%d", org_id, month, synced, propagated)

    total_assigned = sum(item.assigned_cents for item in allocations)
    total_activity = sum(item.activity_cents for item in allocations)
    total_available = sum(item.available_cents for item in allocations)

    snapshot = BudgetSnapshotRead(
        month=month,
        categories=[CategoryRead.model_validate(category) for category in categories],
        goals=[GoalRead.model_validate(goal) for goal in goals],
        allocations=allocations,
        inflows_cents=ledger.inflows,
        ready_to_assign_cents=calculate_ready_to_assign(ledger.inflows, total_assigned),
        total_assigned_cents=total_assigned,
        total_activity_cents=total_activity,
        total_available_cents=total_available,
        uncategorized_activity_cents=ledger.uncategorized_activity,
        quick_budget=quick_budget_context(session, org_id, month, category_ids),
    )

    logger.info(
        "snapshot_done org=%s month=%s categories=%d goals=%d ms=%d",
        org_id,
        month,
        len(categories),
        len(goals),
        (time.perf_counter() - t0) * 1000,
    )
    return snapshot


def quick_budget_context(
    session: Session,
    org_id: uuid.UUID,
    month: str,
    category_ids: List[uuid.UUID],
) -> QuickBudgetContextRead:
    """Last month's and the trailing average figures per category.

    A category only appears in a map when it has data for that figure, so
    "no history" stays distinguishable from "zero".
    """
    context = QuickBudgetContextRead()
    if not category_ids:
        return context

    window = [shift_month(month, -offset) for offset in range(1, AVERAGE_WINDOW + 1)]
    last_month = window[0]
    wanted = set(category_ids)

    rows = session.exec(
        select(BudgetAllocation).where(
            BudgetAllocation.org_id == org_id,
            BudgetAllocation.month.in_(window),
            BudgetAllocation.category_id.in_(category_ids),
        )
    ).all()

    assigned_sums: Dict[uuid.UUID, int] = {}
    for row in rows:
        assigned_sums[row.category_id] = assigned_sums.get(row.category_id, 0) + row.assigned_cents
        if row.month == last_month:
            context.previous_assigned[row.category_id] = row.assigned_cents

    activity_sums: Dict[uuid.UUID, int] = {}
    for window_month in window:
        ledger = ledger_totals(session, org_id, window_month)
        for category_id, activity in ledger.activity.items():
            if category_id not in wanted:
                continue
            activity_sums[category_id] = activity_sums.get(category_id, 0) + activity
            if window_month == last_month:
                context.previous_activity[category_id] = activity

    for category_id, total in assigned_sums.items():
        context.average_assigned[category_id] = divide_rounded(total, AVERAGE_WINDOW)
    for category_id, total in activity_sums.items():
        context.average_activity[category_id] = divide_rounded(total, AVERAGE_WINDOW)
    return context


# ─────────────────────────────
#   WRITES
# ─────────────────────────────

def upsert_allocation(
    session: Session,
    org_id: uuid.UUID,
    category_id: uuid.UUID,
    month: str,
    assigned_cents,
) -> AllocationRead:
    month = normalize_month(month)
    assigned = to_cents(assigned_cents, field="assigned_cents")
    category = get_category(session, org_id, category_id)

    ledger = ledger_totals(session, org_id, month, [category.id])
    existing = _rows_for_month(session, org_id, month, [category.id]).get(category.id)
    prev_row = _rows_for_month(session, org_id, previous_month(month), [category.id]).get(category.id)
    prev_available = _carried_balance(category, prev_row)

    row = _write_row(
        session, org_id, category.id, month, existing, assigned, ledger.activity.get(category.id, 0), prev_available
    )
    _propagate_forward(session, org_id, category, month, row.available_cents)
    session.commit()
    session.refresh(row)

    logger.info("allocation_upserted org=%s category=%s month=%s assigned=%d", org_id, category.id, month, assigned)
    return _read(row, prev_available)


def bulk_upsert_allocations(
    session: Session,
    org_id: uuid.UUID,
    month: str,
    assignments: List[BulkAssignmentIn],
) -> List[AllocationRead]:
    month = normalize_month(month)
    if not assignments:
        return []

    # Last value wins for a repeated category; order follows first appearance.
    wanted: "OrderedDict[uuid.UUID, int]" = OrderedDict()
    for item in assignments:
        wanted[item.categoryId] = to_cents(item.assigned_cents, field="assigned_cents")

    categories = {
        category.id: category
        for category in session.exec(
            select(BudgetCategory).where(
                BudgetCategory.org_id == org_id,
                BudgetCategory.id.in_(list(wanted)),
                BudgetCategory.deleted_at.is_(None),
            )
        ).all()
    }
    missing = [str(category_id) for category_id in wanted if category_id not in categories]
    if missing:
        raise NotFoundError(f"Category not found: {', '.join(missing)}")

    def write() -> List[Tuple[BudgetAllocation, int]]:
        ledger = ledger_totals(session, org_id, month, list(wanted))
        current = _rows_for_month(session, org_id, month, list(wanted))
        previous = _rows_for_month(session, org_id, previous_month(month), list(wanted))
        written = []
        for category_id, assigned in wanted.items():
            category = categories[category_id]
            prev_available = _carried_balance(category, previous.get(category_id))
            row = _write_row(
                session,
                org_id,
                category_id,
                month,
                current.get(category_id),
                assigned,
                ledger.activity.get(category_id, 0),
                prev_available,
            )
            _propagate_forward(session, org_id, category, month, row.available_cents)
            written.append((row, prev_available))
        return written

    written = write_with_retry(session, write)
    logger.info("allocations_bulk_upserted org=%s month=%s rows=%d", org_id, month, len(written))
    return [_read(row, prev_available) for row, prev_available in written]


def apply_goal(session: Session, org_id: uuid.UUID, category_id: uuid.UUID, month: str) -> GoalApplyRead:
    """Top up the month's assignment by what the category's goal still needs."""
    month = normalize_month(month)
    category = get_category(session, org_id, category_id)
    goal = find_goal(session, org_id, category.id)
    if goal is None:
        raise NotFoundError("Goal not found")

    ledger = ledger_totals(session, org_id, month, [category.id])
    existing = _rows_for_month(session, org_id, month, [category.id]).get(category.id)
    prev_row = _rows_for_month(session, org_id, previous_month(month), [category.id]).get(category.id)
    prev_available = _carried_balance(category, prev_row)
    assigned = existing.assigned_cents if existing is not None else 0
    activity = ledger.activity.get(category.id, 0)

    current = AllocationRead(
        category_id=category.id,
        month=month,
        assigned_cents=assigned,
        activity_cents=activity,
        available_cents=compute_available(prev_available, assigned, activity),
        prev_available_cents=prev_available,
    )
    projection = project_goal(goal, current, month)
    diff = projection.remaining_to_goal if projection else 0
    if diff <= 0:
        return GoalApplyRead(diff_cents=0, allocation=current)

    row = _write_row(session, org_id, category.id, month, existing, assigned + diff, activity, prev_available)
    _propagate_forward(session, org_id, category, month, row.available_cents)
    session.commit()
    session.refresh(row)

    logger.info("goal_applied org=%s category=%s month=%s diff=%d", org_id, category.id, month, diff)
    return GoalApplyRead(diff_cents=diff, allocation=_read(row, prev_available))


# ─────────────────────────────
#   CATEGORY DETAILS
# ─────────────────────────────

def category_details(session: Session, org_id: uuid.UUID, category_id: uuid.UUID, month: str) -> CategoryDetailsRead:
    """Drawer figures for one category: balances plus auto-assign hints.

    Averages cover the requested month and the two before it.
    """
    month = normalize_month(month)
    category = get_category(session, org_id, category_id)
    window = [shift_month(month, -offset) for offset in range(AVERAGE_WINDOW)]
    last_month = window[1]

    rows = {
        row.month: row
        for row in session.exec(
            select(BudgetAllocation).where(
                BudgetAllocation.org_id == org_id,
                BudgetAllocation.category_id == category.id,
                BudgetAllocation.month.in_(window),
            )
        ).all()
    }
    spent = {m: ledger_totals(session, org_id, m, [category.id]).activity.get(category.id, 0) for m in window}

    current = rows.get(month)
    previous = rows.get(last_month)
    carried = _carried_balance(category, previous)
    if current is not None:
        available = current.available_cents
        assigned = current.assigned_cents
    else:
        assigned = 0
        available = compute_available(carried, 0, spent[month])

    return CategoryDetailsRead(
        summary=CategorySummaryRead(
            available_balance_cents=available,
            cash_left_over_from_last_month_cents=carried,
            assigned_this_month_cents=assigned,
            cash_spending_cents=spent[month],
        ),
        auto_assign=AutoAssignRead(
            assigned_last_month_cents=previous.assigned_cents if previous is not None else 0,
            spent_last_month_cents=spent[last_month],
            average_assigned_cents=divide_rounded(sum(row.assigned_cents for row in rows.values()), AVERAGE_WINDOW),
            average_spent_cents=divide_rounded(sum(spent.values()), AVERAGE_WINDOW),
        ),
        note=category.note,
    )
