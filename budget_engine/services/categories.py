import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from ..core.errors import BudgetValidationError, NotFoundError
from ..core.goals import GoalType
from ..core.money import to_cents
from ..core.months import normalize_month
from ..core.validation import clean_name, clean_note, validate_cadence, validate_due_day, validate_goal_type
from ..database import write_with_retry
from ..models.category import BudgetCategory
from ..models.goal import BudgetGoal
from ..schemas import CategoryCreate, CategoryUpdate, GoalIn


logger = logging.getLogger(__name__)

SORT_STEP = 100

DEFAULT_CATEGORIES = [
    # (group_name, name, icon, sort)
    ("Bills", "Rent / Mortgage", "home", 100),
    ("Bills", "Electricity", "bolt", 200),
    ("Bills", "Water", "droplet", 300),
    ("Bills", "Internet", "wifi", 400),
    ("Needs", "Groceries", "cart", 100),
    ("Needs", "Transportation", "car", 200),
    ("Needs", "Medical", "heart", 300),
    ("Wants", "Dining Out", "utensils", 100),
    ("Wants", "Entertainment", "film", 200),
    ("Savings", "Emergency Fund", "shield", 100),
    ("Savings", "Vacation", "plane", 200),
]


def list_active_categories(session: Session, org_id: uuid.UUID) -> List[BudgetCategory]:
    stmt = (
        select(BudgetCategory)
        .where(BudgetCategory.org_id == org_id, BudgetCategory.deleted_at.is_(None))
        .order_by(BudgetCategory.group_name.asc(), BudgetCategory.sort.asc(), BudgetCategory.created_at.asc())
    )
    return list(session.exec(stmt).all())


def get_category(session: Session, org_id: uuid.UUID, category_id: uuid.UUID, include_deleted: bool = False) -> BudgetCategory:
    category = session.get(BudgetCategory, category_id)
    if (
        category is None
        or category.org_id != org_id
        or (category.deleted_at is not None and not include_deleted)
    ):
        raise NotFoundError("Category not found")
    return category


def ensure_seed_categories(session: Session, org_id: uuid.UUID) -> int:
    """Give an org with no categories the default set. Returns rows inserted."""
    count = session.exec(
        select(func.count()).select_from(BudgetCategory).where(
            BudgetCategory.org_id == org_id,
            BudgetCategory.deleted_at.is_(None),
        )
    ).one()
    if count:
        return 0

    now = datetime.utcnow()
    for group_name, name, icon, sort in DEFAULT_CATEGORIES:
        session.add(
            BudgetCategory(
                org_id=org_id,
                group_name=group_name,
                name=name,
                icon=icon,
                sort=sort,
                created_at=now,
                updated_at=now,
            )
        )
    session.commit()
    logger.info("seed_categories org=%s rows=%d", org_id, len(DEFAULT_CATEGORIES))
    return len(DEFAULT_CATEGORIES)


def create_category(session: Session, org_id: uuid.UUID, payload: CategoryCreate) -> BudgetCategory:
    group_name = clean_name(payload.group_name, field="group_name")
    name = clean_name(payload.name)
    icon = payload.icon.strip() if isinstance(payload.icon, str) and payload.icon.strip() else None

    last_sort = session.exec(
        select(func.max(BudgetCategory.sort)).where(
            BudgetCategory.org_id == org_id,
            BudgetCategory.group_name == group_name,
        )
    ).one()

    now = datetime.utcnow()
    category = BudgetCategory(
        id=uuid.uuid4(),
        org_id=org_id,
        group_name=group_name,
        name=name,
        icon=icon,
        sort=(last_sort or 0) + SORT_STEP,
        created_at=now,
        updated_at=now,
    )
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def update_category(
    session: Session,
    org_id: uuid.UUID,
    category_id: uuid.UUID,
    payload: CategoryUpdate,
) -> BudgetCategory:
    """Rename, hide, soft delete (or restore), annotate or toggle rollover."""
    fields = payload.model_fields_set
    if not fields:
        raise BudgetValidationError("No fields to update")

    category = get_category(session, org_id, category_id, include_deleted=True)

    if "name" in fields:
        category.name = clean_name(payload.name)
    if "is_hidden" in fields:
        category.is_hidden = bool(payload.is_hidden)
    if "rollover" in fields:
        category.rollover = bool(payload.rollover)
    if "deleted_at" in fields:
        category.deleted_at = payload.deleted_at
    if "note" in fields:
        category.note = clean_note(payload.note)

    category.updated_at = datetime.utcnow()
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def list_goals(session: Session, org_id: uuid.UUID, category_ids: Optional[List[uuid.UUID]] = None) -> List[BudgetGoal]:
    stmt = select(BudgetGoal).where(BudgetGoal.org_id == org_id)
    if category_ids is not None:
        if not category_ids:
            return []
        stmt = stmt.where(BudgetGoal.category_id.in_(category_ids))
    return list(session.exec(stmt).all())


def find_goal(session: Session, org_id: uuid.UUID, category_id: uuid.UUID) -> Optional[BudgetGoal]:
    return session.exec(
        select(BudgetGoal).where(
            BudgetGoal.org_id == org_id,
            BudgetGoal.category_id == category_id,
        )
    ).first()


def upsert_goal(session: Session, org_id: uuid.UUID, category_id: uuid.UUID, payload: GoalIn) -> BudgetGoal:
    goal_type = validate_goal_type(payload.type)
    amount = to_cents(payload.amount_cents, field="amount_cents")
    target_month = None
    if payload.target_month:
        target_month = normalize_month(payload.target_month, field="target_month")
    if goal_type == GoalType.TARGET_BALANCE_BY_DATE and target_month is None:
        raise BudgetValidationError("Target month is required for this goal", field="target_month")
    cadence = validate_cadence(payload.cadence)
    due_day = validate_due_day(payload.due_day_of_month)

    get_category(session, org_id, category_id)

    def write() -> BudgetGoal:
        now = datetime.utcnow()
        goal = find_goal(session, org_id, category_id)
        if goal is None:
            goal = BudgetGoal(id=uuid.uuid4(), org_id=org_id, category_id=category_id, created_at=now)
        goal.type = goal_type.value
        goal.amount_cents = amount
        goal.target_month = target_month
        goal.cadence = cadence.value if cadence else None
        goal.due_day_of_month = due_day
        goal.updated_at = now
        session.add(goal)
        return goal

    goal = write_with_retry(session, write)
    session.refresh(goal)
    return goal


def delete_goal(session: Session, org_id: uuid.UUID, category_id: uuid.UUID) -> None:
    goal = find_goal(session, org_id, category_id)
    if goal is None:
        raise NotFoundError("Goal not found")
    write_with_retry(session, lambda: session.delete(goal))
