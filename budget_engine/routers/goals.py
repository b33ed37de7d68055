import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlmodel import Session

from ..core.context import get_org_id
from ..database import get_session
from ..schemas import GoalApplyIn, GoalApplyRead, GoalIn, GoalRead
from ..services import allocations as allocation_service
from ..services import categories as category_service


router = APIRouter(
    prefix="/budget/goal",
    tags=["goals"],
)


@router.put(
    "/{category_id}",
    response_model=GoalRead,
    status_code=status.HTTP_200_OK,
)
def upsert_goal(
    category_id: uuid.UUID,
    payload: GoalIn,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    """Create or replace the category's goal (one per category)."""
    return category_service.upsert_goal(session, org_id, category_id, payload)


@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_goal(
    category_id: uuid.UUID,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    category_service.delete_goal(session, org_id, category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{category_id}/apply",
    response_model=GoalApplyRead,
    status_code=status.HTTP_200_OK,
)
def apply_goal(
    category_id: uuid.UUID,
    payload: GoalApplyIn,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return allocation_service.apply_goal(session, org_id, category_id, payload.month)
