import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from ..core.context import get_org_id
from ..core.months import current_month
from ..database import get_session
from ..schemas import (
    BudgetSnapshotRead,
    CategoryCreate,
    CategoryDetailsRead,
    CategoryRead,
    CategoryUpdate,
    SnapshotRequest,
)
from ..services import allocations as allocation_service
from ..services import categories as category_service


router = APIRouter(
    prefix="/budget",
    tags=["categories"],
)


@router.get(
    "/categories",
    response_model=BudgetSnapshotRead,
    status_code=status.HTTP_200_OK,
)
def get_snapshot(
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    """Month snapshot; missing allocation rows are created on the way."""
    return allocation_service.load_snapshot(session, org_id, month or current_month())


@router.post(
    "/categories",
    response_model=BudgetSnapshotRead,
    status_code=status.HTTP_201_CREATED,
)
def create_snapshot(
    payload: Optional[SnapshotRequest] = None,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    month = payload.month if payload is not None and payload.month else current_month()
    return allocation_service.load_snapshot(session, org_id, month)


@router.post(
    "/category",
    response_model=CategoryRead,
    status_code=status.HTTP_201_CREATED,
)
def create_category(
    payload: CategoryCreate,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return category_service.create_category(session, org_id, payload)


@router.patch(
    "/category/{category_id}",
    response_model=CategoryRead,
)
def update_category(
    category_id: uuid.UUID,
    payload: CategoryUpdate,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    """Rename, hide, soft delete, annotate or toggle rollover."""
    return category_service.update_category(session, org_id, category_id, payload)


@router.get(
    "/category/{category_id}/details",
    response_model=CategoryDetailsRead,
)
def get_category_details(
    category_id: uuid.UUID,
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return allocation_service.category_details(session, org_id, category_id, month or current_month())
