import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Field, SQLModel

from .core.goals import GoalType


# ─────────────────────────────
#   READ MODELS (wire format)
# ─────────────────────────────

class CategoryRead(SQLModel):
    id: uuid.UUID
    group_name: str
    name: str
    icon: Optional[str] = None
    sort: int = 0
    is_hidden: bool = False
    rollover: bool = True
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class GoalRead(SQLModel):
    id: Optional[uuid.UUID] = None
    category_id: uuid.UUID
    type: GoalType
    amount_cents: int
    target_month: Optional[str] = None
    cadence: Optional[str] = None
    due_day_of_month: Optional[int] = None


class AllocationRead(SQLModel):
    category_id: uuid.UUID
    month: str
    assigned_cents: int = 0
    activity_cents: int = 0
    available_cents: int = 0
    prev_available_cents: int = 0


class QuickBudgetContextRead(SQLModel):
    previous_assigned: Dict[uuid.UUID, int] = Field(default_factory=dict)
    previous_activity: Dict[uuid.UUID, int] = Field(default_factory=dict)
    average_assigned: Dict[uuid.UUID, int] = Field(default_factory=dict)
    average_activity: Dict[uuid.UUID, int] = Field(default_factory=dict)


class BudgetSnapshotRead(SQLModel):
    month: str
    categories: List[CategoryRead] = Field(default_factory=list)
    goals: List[GoalRead] = Field(default_factory=list)
    allocations: List[AllocationRead] = Field(default_factory=list)
    inflows_cents: int = 0
    ready_to_assign_cents: int = 0
    total_assigned_cents: int = 0
    total_activity_cents: int = 0
    total_available_cents: int = 0
    # Outflows with no category; reported apart so category totals stay exact sums.
    uncategorized_activity_cents: int = 0
    quick_budget: QuickBudgetContextRead = Field(default_factory=QuickBudgetContextRead)


class AllocationEnvelope(SQLModel):
    allocation: AllocationRead


class BulkAllocationsRead(SQLModel):
    allocations: List[AllocationRead] = Field(default_factory=list)


class GoalApplyRead(SQLModel):
    diff_cents: int
    allocation: AllocationRead


class CategorySummaryRead(SQLModel):
    available_balance_cents: int = 0
    cash_left_over_from_last_month_cents: int = 0
    assigned_this_month_cents: int = 0
    cash_spending_cents: int = 0


class AutoAssignRead(SQLModel):
    assigned_last_month_cents: int = 0
    spent_last_month_cents: int = 0
    average_assigned_cents: int = 0
    average_spent_cents: int = 0


class CategoryDetailsRead(SQLModel):
    summary: CategorySummaryRead
    auto_assign: AutoAssignRead
    note: Optional[str] = None


# ─────────────────────────────
#   REQUEST BODIES
# ─────────────────────────────

# Amounts stay raw so to_cents rejects booleans and numeric strings.
Amount = Any


class SnapshotRequest(SQLModel):
    month: Optional[str] = None


class AllocationUpsertIn(SQLModel):
    categoryId: uuid.UUID
    month: Optional[str] = None
    assigned_cents: Amount = None


class BulkAssignmentIn(SQLModel):
    categoryId: uuid.UUID
    assigned_cents: Amount = None


class BulkAllocationIn(SQLModel):
    month: Optional[str] = None
    assignments: Optional[List[BulkAssignmentIn]] = None


class GoalApplyIn(SQLModel):
    month: Optional[str] = None


class GoalIn(SQLModel):
    type: Optional[str] = None
    amount_cents: Amount = None
    target_month: Optional[str] = None
    cadence: Optional[str] = None
    due_day_of_month: Optional[int] = None


class CategoryCreate(SQLModel):
    group_name: Optional[str] = None
    name: Optional[str] = None
    icon: Optional[str] = None


class CategoryUpdate(SQLModel):
    name: Optional[str] = None
    is_hidden: Optional[bool] = None
    rollover: Optional[bool] = None
    deleted_at: Optional[datetime] = None
    note: Optional[str] = None
