import uuid
from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class BudgetAllocation(SQLModel, table=True):
    __tablename__ = "budget_allocations"
    __table_args__ = (
        UniqueConstraint("org_id", "category_id", "month", name="uq_budget_allocations_org_category_month"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    org_id: uuid.UUID = Field(index=True)
    category_id: uuid.UUID = Field(foreign_key="budget_categories.id", index=True)

    # YYYY-MM (e.g. 2026-02), always zero padded
    month: str = Field(index=True, min_length=7, max_length=7)

    assigned_cents: int = Field(default=0)
    activity_cents: int = Field(default=0)
    # available = previous month's available + assigned - activity
    available_cents: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
