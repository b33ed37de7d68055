from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .months import compare_months, months_between, normalize_month


class GoalType(str, Enum):
    MONTHLY_FUNDING = "MFG"
    TARGET_BALANCE = "TB"
    TARGET_BALANCE_BY_DATE = "TBD"
    CUSTOM = "CUSTOM"


class GoalCadence(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


@dataclass(frozen=True)
class GoalProjection:
    required_this_month: int
    remaining_to_goal: int
    assigned_so_far: int
    progress_ratio: float
    target_amount: int


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def project_goal(goal, allocation, month: str) -> Optional[GoalProjection]:
    """Project what a category's goal still needs in ``month``.

    ``goal`` needs ``type``, ``amount_cents`` and ``target_month``;
    ``allocation`` needs ``assigned_cents`` and ``available_cents``. Returns
    None while either one is missing.

    ``remaining_to_goal`` is what is still owed this month. The MFG, CUSTOM
    and TB rules already net out the assigned amount, so for them it equals
    ``required_this_month``. For TBD the monthly installment is compared
    against what has been assigned so far.
    """
    if goal is None or allocation is None:
        return None

    goal_type = GoalType(goal.type)
    target = goal.amount_cents
    assigned = allocation.assigned_cents
    available = allocation.available_cents

    if goal_type in (GoalType.MONTHLY_FUNDING, GoalType.CUSTOM):
        required = max(target - assigned, 0)
        remaining = required
    elif goal_type == GoalType.TARGET_BALANCE:
        required = max(target - available, 0)
        remaining = required
    else:
        required = 0
        if goal.target_month:
            target_month = normalize_month(goal.target_month, field="target_month")
            if compare_months(month, target_month) <= 0:
                months_remaining = max(1, months_between(month, target_month) + 1)
                shortfall = max(target - available, 0)
                required = _ceil_div(shortfall, months_remaining)
        remaining = max(required - assigned, 0)

    if target == 0:
        progress = 1.0
    else:
        progress = min(max(available / target, 0.0), 1.0)

    return GoalProjection(
        required_this_month=required,
        remaining_to_goal=remaining,
        assigned_so_far=assigned,
        progress_ratio=progress,
        target_amount=target,
    )
