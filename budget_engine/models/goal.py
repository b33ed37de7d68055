import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class BudgetGoal(SQLModel, table=True):
    __tablename__ = "budget_goals"
    __table_args__ = (UniqueConstraint("org_id", "category_id", name="uq_budget_goals_org_category"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    org_id: uuid.UUID = Field(index=True)
    category_id: uuid.UUID = Field(foreign_key="budget_categories.id", index=True)

    # MFG | TB | TBD | CUSTOM
    type: str = Field(max_length=8)
    amount_cents: int = Field(ge=0)

    # YYYY-MM
    target_month: Optional[str] = Field(default=None, min_length=7, max_length=7)
    cadence: Optional[str] = Field(default=None, max_length=16)
    due_day_of_month: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
