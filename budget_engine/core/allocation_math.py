from dataclasses import dataclass
from typing import Iterable


@dataclass
class MonthTotals:
    assigned: int = 0
    activity: int = 0
    available: int = 0


def compute_available(prev_available: int, assigned: int, activity: int) -> int:
    return prev_available + assigned - activity


def calculate_to_be_budgeted(
    inflows: int,
    categories: Iterable,
    reserved_adjustments: int = 0,
    carryover_adjustments: int = 0,
) -> int:
    """Inflows minus everything budgeted, adjusted for reserves and carryover.

    Items may be allocation rows (``assigned_cents``) or budget lines
    (``budgeted_cents``).
    """
    budgeted = 0
    for item in categories:
        value = getattr(item, "assigned_cents", None)
        if value is None:
            value = getattr(item, "budgeted_cents", 0)
        budgeted += value or 0
    return inflows - budgeted - reserved_adjustments + carryover_adjustments


def calculate_ready_to_assign(inflows: int, total_assigned: int) -> int:
    # Negative means over-assigned; that is shown to the user, not rejected.
    return inflows - total_assigned


def apply_cash_overspending(available: int, next_ready_to_assign: int) -> int:
    """Take a category's cash overspending out of next month's ready to assign, never below zero."""
    if available >= 0:
        return next_ready_to_assign
    return max(next_ready_to_assign + available, 0)


def summarize(allocations: Iterable) -> MonthTotals:
    totals = MonthTotals()
    for allocation in allocations:
        totals.assigned += allocation.assigned_cents
        totals.activity += allocation.activity_cents
        totals.available += allocation.available_cents
    return totals
