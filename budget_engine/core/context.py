import uuid
from typing import Optional

from fastapi import Header

from ..config import settings
from .errors import BudgetValidationError


def get_org_id(x_org_id: Optional[str] = Header(default=None, alias="X-Org-Id")) -> uuid.UUID:
    """Org the request operates on; every budget row is scoped to it."""
    raw = (x_org_id or settings.default_org_id).strip()
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise BudgetValidationError("Invalid organization id", field="X-Org-Id")
