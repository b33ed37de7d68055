import uuid
from datetime import datetime, date
from typing import Optional

from sqlmodel import SQLModel, Field


class AccountTransaction(SQLModel, table=True):
    __tablename__ = "account_transactions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    org_id: uuid.UUID = Field(index=True)
    category_id: Optional[uuid.UUID] = Field(default=None, foreign_key="budget_categories.id", index=True)

    amount_cents: int = Field(ge=0)
    # outflow | inflow
    direction: str = Field(default="outflow", max_length=8)
    description: str = Field(default="", max_length=255)
    occurred_on: date = Field(default_factory=date.today, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    deleted_at: Optional[datetime] = Field(default=None)
