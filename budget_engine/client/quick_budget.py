import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..core.goals import project_goal


class QuickBudgetMode(str, Enum):
    UNDERFUNDED = "UNDERFUNDED"
    BUDGETED_LAST_MONTH = "BUDGETED_LAST_MONTH"
    SPENT_LAST_MONTH = "SPENT_LAST_MONTH"
    AVERAGE_BUDGETED = "AVERAGE_BUDGETED"
    AVERAGE_SPENT = "AVERAGE_SPENT"


DESCRIPTIONS = {
    QuickBudgetMode.UNDERFUNDED: "Fill underfunded goals",
    QuickBudgetMode.BUDGETED_LAST_MONTH: "Assigned last month",
    QuickBudgetMode.SPENT_LAST_MONTH: "Spent last month",
    QuickBudgetMode.AVERAGE_BUDGETED: "Average assigned",
    QuickBudgetMode.AVERAGE_SPENT: "Average spent",
}


@dataclass(frozen=True)
class PatchEntry:
    category_id: uuid.UUID
    next_assigned_cents: int


@dataclass(frozen=True)
class QuickBudgetDiff:
    category_id: uuid.UUID
    name: str
    from_cents: int
    to_cents: int

    @property
    def delta(self) -> int:
        return self.to_cents - self.from_cents


@dataclass
class QuickBudgetPlan:
    mode: QuickBudgetMode
    description: str
    patch: List[PatchEntry] = field(default_factory=list)
    diffs: List[QuickBudgetDiff] = field(default_factory=list)

    @property
    def total_delta(self) -> int:
        return sum(diff.delta for diff in self.diffs)


def _history_map(mode: QuickBudgetMode, context) -> Dict[uuid.UUID, int]:
    if mode == QuickBudgetMode.BUDGETED_LAST_MONTH:
        return context.previous_assigned
    if mode == QuickBudgetMode.SPENT_LAST_MONTH:
        return context.previous_activity
    if mode == QuickBudgetMode.AVERAGE_BUDGETED:
        return context.average_assigned
    return context.average_activity


def _target(mode: QuickBudgetMode, store, category_id: uuid.UUID, assigned: int) -> Optional[int]:
    if mode == QuickBudgetMode.UNDERFUNDED:
        projection = project_goal(store.goals.get(category_id), store.allocation(category_id), store.month)
        if projection is None:
            return None
        return assigned + projection.remaining_to_goal
    value = _history_map(mode, store.quick_budget).get(category_id)
    if value is None:
        return None
    # Net refunds can push historical activity below zero; assignments cannot go there.
    return max(int(value), 0)


def build_quick_budget_plan(mode, store) -> QuickBudgetPlan:
    """Work out the assignments a quick-budget mode would make.

    Limited to the current selection when there is one. Categories whose
    target equals what is already assigned are left out, so the plan holds
    real changes only.
    """
    mode = QuickBudgetMode(mode)
    plan = QuickBudgetPlan(mode=mode, description=DESCRIPTIONS[mode])
    selection = set(store.selection)

    for category in store.active_categories():
        if selection and category.id not in selection:
            continue
        allocation = store.allocation(category.id)
        assigned = allocation.assigned_cents if allocation is not None else 0
        target = _target(mode, store, category.id, assigned)
        if target is None or target == assigned:
            continue
        plan.patch.append(PatchEntry(category_id=category.id, next_assigned_cents=target))
        plan.diffs.append(
            QuickBudgetDiff(category_id=category.id, name=category.name, from_cents=assigned, to_cents=target)
        )
    return plan
