"""Client-side planner state.

``PlannerStore`` keeps every loaded month in memory. It holds two views of
the allocations: the rows the server has confirmed, and the rows shown to
the user, which are the confirmed rows with every pending change laid on
top in the order it was issued. A change shows up locally at once. Its
gateway call then waits its turn behind earlier writes, so calls resolve in
issue order. A rejected change only drops its own patch, and whatever else
is still pending stays visible.

Confirmed changes are recorded as deep-copied snapshots of the confirmed
rows, so undo and redo can restore them without touching the server.
"""

import asyncio
import copy
import logging
import math
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from ..config import settings
from ..core.allocation_math import MonthTotals, calculate_ready_to_assign, compute_available, summarize
from ..core.errors import BudgetError, BudgetValidationError, NotFoundError
from ..core.goals import GoalProjection, GoalType, project_goal
from ..core.money import format_cents, to_cents
from ..core.months import next_month, normalize_month, previous_month
from ..core.validation import clean_name, validate_cadence, validate_due_day, validate_goal_type
from ..schemas import AllocationRead, CategoryDetailsRead, CategoryRead, GoalRead, QuickBudgetContextRead
from .api import BudgetGateway
from .quick_budget import PatchEntry, QuickBudgetDiff, QuickBudgetPlan, build_quick_budget_plan


logger = logging.getLogger(__name__)

MAX_HISTORY = 50
WIZARD_STEPS = 3

Rows = Dict[uuid.UUID, Dict[str, AllocationRead]]


class PlannerStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


@dataclass
class UIState:
    name_modal_id: Optional[uuid.UUID] = None
    drawer_category_id: Optional[uuid.UUID] = None
    wizard_step: int = 1
    show_hidden: bool = False


@dataclass(frozen=True)
class Toast:
    kind: str
    message: str


@dataclass(frozen=True)
class HistorySnapshot:
    allocations: Rows


@dataclass
class CategoryGroup:
    name: str
    categories: List[CategoryRead] = field(default_factory=list)


class PlannerStore:
    def __init__(self, gateway: BudgetGateway, max_history: int = MAX_HISTORY, currency: Optional[str] = None):
        self._gateway = gateway
        self._max_history = max_history
        self._currency = currency or settings.currency

        self.status = PlannerStatus.UNINITIALIZED
        self.month: Optional[str] = None
        self.categories: List[CategoryRead] = []
        self.goals: Dict[uuid.UUID, GoalRead] = {}
        # category id -> month -> row, as displayed
        self.allocations: Rows = {}
        self.totals_by_month: Dict[str, MonthTotals] = {}
        self.ready_to_assign_by_month: Dict[str, int] = {}
        self.inflows_by_month: Dict[str, int] = {}
        self.quick_budget = QuickBudgetContextRead()
        self.details: Dict[uuid.UUID, CategoryDetailsRead] = {}

        self.past: List[HistorySnapshot] = []
        self.future: List[HistorySnapshot] = []

        self.ui = UIState()
        self.selection: List[uuid.UUID] = []
        self.focused_id: Optional[uuid.UUID] = None
        self.toast: Optional[Toast] = None
        self.error: Optional[str] = None
        self.last_action: Optional[str] = None

        # rows as the server last confirmed them
        self._confirmed: Rows = {}
        # seq -> (month, category id -> assigned), in issue order
        self._pending: Dict[int, Tuple[str, Dict[uuid.UUID, int]]] = OrderedDict()
        self._seq = 0
        self._lock = asyncio.Lock()

    # ── loading ───────────────────────────────────────────────

    async def initialize(self, month: str) -> None:
        month = normalize_month(month)
        # Waits for in-flight writes so the snapshot is not overtaken by them.
        async with self._lock:
            previous_status = self.status
            self.status = PlannerStatus.LOADING
            self.error = None
            try:
                snapshot = await self._gateway.load_snapshot(month)
            except Exception as exc:
                self.status = previous_status
                self.error = getattr(exc, "message", None) or str(exc) or "Could not load the budget"
                logger.warning("planner_load_failed month=%s error=%s", month, exc)
                raise

            self._merge_snapshot(snapshot)
            self.past.clear()
            self.future.clear()
            self.status = PlannerStatus.READY
        logger.info("planner_ready month=%s categories=%d", self.month, len(self.categories))

    async def select_month(self, month: str) -> None:
        await self.initialize(month)

    def _merge_snapshot(self, snapshot) -> None:
        month = normalize_month(snapshot.month)
        self.month = month
        self.categories = list(snapshot.categories)
        self.goals = {goal.category_id: goal for goal in snapshot.goals}
        self.inflows_by_month[month] = snapshot.inflows_cents
        self.quick_budget = snapshot.quick_budget

        present = {row.category_id for row in snapshot.allocations}
        for category_id, months in self._confirmed.items():
            if category_id not in present:
                months.pop(month, None)

        for row in snapshot.allocations:
            self._confirmed.setdefault(row.category_id, {})[month] = row.model_copy()
            self._carry_forward(self._confirmed, row.category_id, month)
        self._rebuild()

    # ── allocation math over loaded months ───────────────────

    def _category(self, category_id: uuid.UUID) -> Optional[CategoryRead]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def _rollover(self, category_id: uuid.UUID) -> bool:
        category = self._category(category_id)
        return category.rollover if category is not None else True

    def _ensure_row(self, rows: Rows, category_id: uuid.UUID, month: str) -> AllocationRead:
        months = rows.setdefault(category_id, {})
        row = months.get(month)
        if row is None:
            prev = months.get(previous_month(month))
            carried = prev.available_cents if prev is not None and self._rollover(category_id) else 0
            row = AllocationRead(
                category_id=category_id,
                month=month,
                prev_available_cents=carried,
                available_cents=carried,
            )
            months[month] = row
        return row

    def _carry_forward(self, rows: Rows, category_id: uuid.UUID, month: str) -> None:
        """Re-chain the later loaded months after ``month`` changed."""
        if not self._rollover(category_id):
            return
        months = rows.get(category_id, {})
        available = months[month].available_cents
        cursor = next_month(month)
        while cursor in months:
            row = months[cursor]
            row.prev_available_cents = available
            row.available_cents = compute_available(available, row.assigned_cents, row.activity_cents)
            available = row.available_cents
            cursor = next_month(cursor)

    def _set_local(self, rows: Rows, category_id: uuid.UUID, month: str, assigned: int) -> None:
        row = self._ensure_row(rows, category_id, month)
        row.assigned_cents = assigned
        row.available_cents = compute_available(row.prev_available_cents, assigned, row.activity_cents)
        self._carry_forward(rows, category_id, month)

    def _reconcile(self, server_row: AllocationRead) -> None:
        if self._category(server_row.category_id) is None:
            # deleted while the write was in flight
            return
        month = normalize_month(server_row.month)
        row = self._ensure_row(self._confirmed, server_row.category_id, month)
        row.assigned_cents = server_row.assigned_cents
        row.activity_cents = server_row.activity_cents
        row.prev_available_cents = server_row.prev_available_cents
        row.available_cents = server_row.available_cents
        self._carry_forward(self._confirmed, server_row.category_id, month)

    def _recompute(self, months: Iterable[str]) -> None:
        for month in months:
            rows = [by_month[month] for by_month in self.allocations.values() if month in by_month]
            totals = summarize(rows)
            self.totals_by_month[month] = totals
            self.ready_to_assign_by_month[month] = calculate_ready_to_assign(
                self.inflows_by_month.get(month, 0), totals.assigned
            )

    def _rebuild(self) -> None:
        """Display the confirmed rows with every pending patch replayed on top."""
        rows = copy.deepcopy(self._confirmed)
        for month, values in self._pending.values():
            for category_id, assigned in values.items():
                self._set_local(rows, category_id, month, assigned)
        self.allocations = rows
        self.totals_by_month = {}
        self.ready_to_assign_by_month = {}
        months = set(self.inflows_by_month)
        for by_month in rows.values():
            months.update(by_month)
        self._recompute(sorted(months))

    # ── history ───────────────────────────────────────────────

    def _capture(self) -> HistorySnapshot:
        return HistorySnapshot(allocations=copy.deepcopy(self._confirmed))

    def _restore(self, snapshot: HistorySnapshot) -> None:
        self._confirmed = copy.deepcopy(snapshot.allocations)
        self._rebuild()

    def _push_history(self, snapshot: HistorySnapshot) -> None:
        self.past.append(snapshot)
        if len(self.past) > self._max_history:
            del self.past[: len(self.past) - self._max_history]
        self.future.clear()

    @property
    def can_undo(self) -> bool:
        return bool(self.past)

    @property
    def can_redo(self) -> bool:
        return bool(self.future)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def undo(self) -> bool:
        if not self.past:
            return False
        snapshot = self.past.pop()
        self.future.append(self._capture())
        self._restore(snapshot)
        self.last_action = "Undo"
        return True

    def redo(self) -> bool:
        if not self.future:
            return False
        snapshot = self.future.pop()
        self.past.append(self._capture())
        self._restore(snapshot)
        self.last_action = "Redo"
        return True

    # ── pending writes ────────────────────────────────────────

    def _require_month(self) -> str:
        if self.status != PlannerStatus.READY or self.month is None:
            raise BudgetError("The budget month is not loaded yet")
        return self.month

    def _begin(self, month: str, values: Dict[uuid.UUID, int]) -> int:
        self._seq += 1
        self._pending[self._seq] = (month, values)
        self._rebuild()
        return self._seq

    def _settle(self, seq: int, rows: Iterable[AllocationRead]) -> None:
        for row in rows:
            self._reconcile(row)
        self._pending.pop(seq, None)
        self._rebuild()

    def _reject(self, seq: int, exc: Exception, message: str) -> None:
        self._pending.pop(seq, None)
        self._rebuild()
        self.error = getattr(exc, "message", None) or str(exc)
        self.toast = Toast("error", message)
        logger.warning("planner_write_rejected seq=%d pending=%d error=%s", seq, len(self._pending), exc)

    # ── allocation mutations ─────────────────────────────────

    async def apply_patch(self, patch: Iterable[PatchEntry], description: str = "Budget updated"):
        """Assign new amounts as one undoable step.

        Returns the diffs that were saved, ``[]`` when nothing would change
        and None when the server rejected the change and it was dropped.
        """
        month = self._require_month()

        values = OrderedDict()
        for entry in patch:
            values[entry.category_id] = to_cents(entry.next_assigned_cents, field="assigned_cents")

        diffs = []
        for category_id, value in values.items():
            current = self.allocation(category_id, month)
            current_value = current.assigned_cents if current is not None else 0
            if value != current_value:
                category = self._category(category_id)
                diffs.append(
                    QuickBudgetDiff(
                        category_id=category_id,
                        name=category.name if category is not None else "",
                        from_cents=current_value,
                        to_cents=value,
                    )
                )
        if not diffs:
            return []

        seq = self._begin(month, {diff.category_id: diff.to_cents for diff in diffs})
        try:
            async with self._lock:
                if len(diffs) == 1:
                    rows = [await self._gateway.upsert_allocation(diffs[0].category_id, month, diffs[0].to_cents)]
                else:
                    rows = await self._gateway.bulk_upsert_allocations(
                        month, [(diff.category_id, diff.to_cents) for diff in diffs]
                    )
        except Exception as exc:
            self._reject(seq, exc, "Could not save your budget changes")
            return None

        self._push_history(self._capture())
        self._settle(seq, rows)
        self.last_action = description
        self.toast = Toast("success", description)
        return diffs

    async def set_assigned(self, category_id: uuid.UUID, value):
        value = to_cents(value, field="assigned_cents")
        return await self.apply_patch([PatchEntry(category_id, value)], "Assigned amount updated")

    def _current_assigned(self, category_id: uuid.UUID) -> int:
        row = self.allocation(category_id)
        return row.assigned_cents if row is not None else 0

    async def batch_set(self, category_ids: Iterable[uuid.UUID], value):
        value = to_cents(value, field="assigned_cents")
        patch = [PatchEntry(category_id, value) for category_id in category_ids]
        return await self.apply_patch(patch, "Assigned amounts updated")

    async def batch_adjust(self, category_ids: Iterable[uuid.UUID], delta: int):
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise BudgetValidationError("Invalid amount", field="delta")
        patch = [
            PatchEntry(category_id, max(self._current_assigned(category_id) + delta, 0))
            for category_id in category_ids
        ]
        return await self.apply_patch(patch, "Assigned amounts adjusted")

    async def batch_adjust_percent(self, category_ids: Iterable[uuid.UUID], percent):
        if isinstance(percent, bool) or not isinstance(percent, (int, float)) or not math.isfinite(percent):
            raise BudgetValidationError("Invalid percentage", field="percent")
        patch = []
        for category_id in category_ids:
            scaled = self._current_assigned(category_id) * (100 + percent) / 100
            patch.append(PatchEntry(category_id, max(int(math.floor(scaled + 0.5)), 0)))
        return await self.apply_patch(patch, "Assigned amounts adjusted")

    def preview_quick_budget(self, mode) -> QuickBudgetPlan:
        self._require_month()
        return build_quick_budget_plan(mode, self)

    async def apply_quick_budget(self, mode):
        plan = self.preview_quick_budget(mode)
        if not plan.patch:
            self.toast = Toast("info", "Nothing to change")
            return plan
        diffs = await self.apply_patch(plan.patch, plan.description)
        if diffs is None:
            return None
        return plan

    async def apply_goal(self, category_id: uuid.UUID):
        month = self._require_month()
        if category_id not in self.goals:
            raise NotFoundError("Goal not found")

        try:
            async with self._lock:
                result = await self._gateway.apply_goal(category_id, month)
        except Exception as exc:
            # Nothing was applied locally, so there is nothing to drop.
            self.error = getattr(exc, "message", None) or str(exc)
            self.toast = Toast("error", "Could not apply the goal")
            logger.warning("planner_goal_failed category=%s error=%s", category_id, exc)
            return None

        if result.diff_cents > 0:
            self._push_history(self._capture())
        self._reconcile(result.allocation)
        self._rebuild()
        if result.diff_cents > 0:
            self.last_action = "Goal applied"
            self.toast = Toast("success", f"Goal applied (+{format_cents(result.diff_cents, self._currency)})")
        else:
            self.toast = Toast("info", "Goal already funded")
        return result

    # ── categories and goals (server first) ──────────────────

    def _replace_category(self, updated: CategoryRead) -> None:
        self.categories = [updated if category.id == updated.id else category for category in self.categories]

    def _fail(self, exc: Exception, message: str) -> None:
        self.error = getattr(exc, "message", None) or str(exc)
        self.toast = Toast("error", message)
        logger.warning("planner_action_failed error=%s", exc)

    async def create_category(self, group_name: str, name: str, icon: Optional[str] = None):
        group_name = clean_name(group_name, field="group_name")
        name = clean_name(name)
        try:
            created = await self._gateway.create_category(group_name, name, icon)
        except Exception as exc:
            self._fail(exc, "Could not create the category")
            return None
        self.categories = self.categories + [created]
        self.toast = Toast("success", "Category created")
        return created

    async def category_details(self, category_id: uuid.UUID, month: Optional[str] = None):
        """Load the drawer figures for one category, keeping the last result per category."""
        month = normalize_month(month) if month else self._require_month()
        try:
            details = await self._gateway.category_details(category_id, month)
        except Exception as exc:
            self._fail(exc, "Could not load the category details")
            return None
        self.details[category_id] = details
        return details

    async def rename_category(self, category_id: uuid.UUID, name: str):
        name = clean_name(name)
        try:
            updated = await self._gateway.update_category(category_id, name=name)
        except Exception as exc:
            self._fail(exc, "Could not rename the category")
            return None
        self._replace_category(updated)
        self.close_overlays()
        self.toast = Toast("success", "Category renamed")
        return updated

    async def hide_category(self, category_id: uuid.UUID, hidden: bool = True):
        try:
            updated = await self._gateway.update_category(category_id, is_hidden=hidden)
        except Exception as exc:
            self._fail(exc, "Could not update the category")
            return None
        self._replace_category(updated)
        self.toast = Toast("success", "Category hidden" if hidden else "Category shown")
        return updated

    async def delete_category(self, category_id: uuid.UUID):
        try:
            updated = await self._gateway.update_category(category_id, deleted_at=datetime.utcnow().isoformat())
        except Exception as exc:
            self._fail(exc, "Could not delete the category")
            return None

        self.categories = [category for category in self.categories if category.id != category_id]
        self.goals.pop(category_id, None)
        self.selection = [selected for selected in self.selection if selected != category_id]
        if self.focused_id == category_id:
            self.focused_id = None
        self.details.pop(category_id, None)
        self._confirmed.pop(category_id, None)
        for _, values in self._pending.values():
            values.pop(category_id, None)
        self._rebuild()
        # Older snapshots still hold the deleted category's rows.
        self.past.clear()
        self.future.clear()
        self.toast = Toast("success", "Category deleted")
        return updated

    async def save_goal(
        self,
        category_id: uuid.UUID,
        type,
        amount_cents,
        target_month: Optional[str] = None,
        cadence: Optional[str] = None,
        due_day_of_month: Optional[int] = None,
    ):
        goal_type = validate_goal_type(type)
        amount = to_cents(amount_cents, field="amount_cents")
        if target_month:
            target_month = normalize_month(target_month, field="target_month")
        if goal_type == GoalType.TARGET_BALANCE_BY_DATE and not target_month:
            raise BudgetValidationError("Target month is required for this goal", field="target_month")
        cadence_value = validate_cadence(cadence)
        due_day = validate_due_day(due_day_of_month)

        payload = {
            "type": goal_type.value,
            "amount_cents": amount,
            "target_month": target_month or None,
            "cadence": cadence_value.value if cadence_value else None,
            "due_day_of_month": due_day,
        }
        try:
            goal = await self._gateway.save_goal(category_id, payload)
        except Exception as exc:
            self._fail(exc, "Could not save the goal")
            return None
        self.goals[category_id] = goal
        self.toast = Toast("success", "Goal saved")
        return goal

    async def remove_goal(self, category_id: uuid.UUID) -> bool:
        try:
            await self._gateway.remove_goal(category_id)
        except Exception as exc:
            self._fail(exc, "Could not remove the goal")
            return False
        self.goals.pop(category_id, None)
        self.toast = Toast("success", "Goal removed")
        return True

    # ── overlays, selection, focus ───────────────────────────

    def open_name_modal(self, category_id: uuid.UUID) -> None:
        self.ui.drawer_category_id = None
        self.ui.name_modal_id = category_id

    def open_drawer(self, category_id: uuid.UUID) -> None:
        self.ui.name_modal_id = None
        self.ui.drawer_category_id = category_id
        self.ui.wizard_step = 1

    def close_overlays(self) -> None:
        self.ui.name_modal_id = None
        self.ui.drawer_category_id = None

    def go_to_step(self, step: int) -> None:
        if isinstance(step, bool) or not isinstance(step, int) or not 1 <= step <= WIZARD_STEPS:
            raise BudgetValidationError("Invalid wizard step", field="step")
        self.ui.wizard_step = step

    def toggle_show_hidden(self) -> bool:
        self.ui.show_hidden = not self.ui.show_hidden
        return self.ui.show_hidden

    def dismiss_toast(self) -> None:
        self.toast = None

    def toggle_selection(self, category_id: uuid.UUID, multi: bool = False) -> None:
        if not multi:
            self.selection = [] if self.selection == [category_id] else [category_id]
        elif category_id in self.selection:
            self.selection = [selected for selected in self.selection if selected != category_id]
        else:
            self.selection = self.selection + [category_id]
        self.focused_id = category_id

    def replace_selection(self, category_ids: Iterable[uuid.UUID]) -> None:
        self.selection = list(OrderedDict.fromkeys(category_ids))

    def clear_selection(self) -> None:
        self.selection = []

    def set_focused(self, category_id: Optional[uuid.UUID]) -> None:
        self.focused_id = category_id

    # ── read helpers ─────────────────────────────────────────

    def active_categories(self) -> List[CategoryRead]:
        return [category for category in self.categories if category.deleted_at is None]

    def groups(self) -> List[CategoryGroup]:
        grouped: Dict[str, CategoryGroup] = OrderedDict()
        for category in self.active_categories():
            if category.is_hidden and not self.ui.show_hidden:
                continue
            grouped.setdefault(category.group_name, CategoryGroup(category.group_name)).categories.append(category)
        for group in grouped.values():
            group.categories.sort(key=lambda category: (category.sort, category.name))
        return list(grouped.values())

    def totals(self, month: Optional[str] = None) -> MonthTotals:
        return self.totals_by_month.get(month or self.month, MonthTotals())

    def ready_to_assign(self, month: Optional[str] = None) -> int:
        return self.ready_to_assign_by_month.get(month or self.month, 0)

    def allocation(self, category_id: uuid.UUID, month: Optional[str] = None) -> Optional[AllocationRead]:
        return self.allocations.get(category_id, {}).get(month or self.month)

    def goal_progress(self, category_id: uuid.UUID, month: Optional[str] = None) -> Optional[GoalProjection]:
        month = month or self.month
        return project_goal(self.goals.get(category_id), self.allocation(category_id, month), month)

    def underfunded(self, month: Optional[str] = None) -> List[QuickBudgetDiff]:
        """Categories whose goal still needs money, with the amount to reach it."""
        month = month or self.month
        result = []
        for category in self.active_categories():
            projection = self.goal_progress(category.id, month)
            if projection is None or projection.remaining_to_goal <= 0:
                continue
            result.append(
                QuickBudgetDiff(
                    category_id=category.id,
                    name=category.name,
                    from_cents=projection.assigned_so_far,
                    to_cents=projection.assigned_so_far + projection.remaining_to_goal,
                )
            )
        return result
