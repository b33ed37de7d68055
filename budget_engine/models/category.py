import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class BudgetCategory(SQLModel, table=True):
    __tablename__ = "budget_categories"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    org_id: uuid.UUID = Field(index=True)

    group_name: str = Field(max_length=80, index=True)
    name: str = Field(max_length=80)
    icon: Optional[str] = Field(default=None, max_length=32)
    sort: int = Field(default=0)

    is_hidden: bool = Field(default=False)
    # When False the category starts every month from zero instead of carrying its balance.
    rollover: bool = Field(default=True)
    note: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    deleted_at: Optional[datetime] = Field(default=None)
