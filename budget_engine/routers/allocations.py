import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from ..core.context import get_org_id
from ..core.errors import BudgetValidationError
from ..database import get_session
from ..schemas import AllocationEnvelope, AllocationUpsertIn, BulkAllocationIn, BulkAllocationsRead
from ..services import allocations as allocation_service


router = APIRouter(
    prefix="/budget/allocation",
    tags=["allocations"],
)


@router.put(
    "",
    response_model=AllocationEnvelope,
    status_code=status.HTTP_200_OK,
)
def upsert_allocation(
    payload: AllocationUpsertIn,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    allocation = allocation_service.upsert_allocation(
        session, org_id, payload.categoryId, payload.month, payload.assigned_cents
    )
    return AllocationEnvelope(allocation=allocation)


@router.post(
    "/bulk",
    response_model=BulkAllocationsRead,
    status_code=status.HTTP_200_OK,
)
def bulk_upsert_allocations(
    payload: BulkAllocationIn,
    session: Session = Depends(get_session),
    org_id: uuid.UUID = Depends(get_org_id),
):
    if payload.assignments is None:
        raise BudgetValidationError("Assignments are required", field="assignments")
    allocations = allocation_service.bulk_upsert_allocations(session, org_id, payload.month, payload.assignments)
    return BulkAllocationsRead(allocations=allocations)
