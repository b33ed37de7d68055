import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from ..config import settings
from ..core.errors import BudgetValidationError, NotFoundError, PersistenceError
from ..schemas import (
    AllocationEnvelope,
    AllocationRead,
    BudgetSnapshotRead,
    BulkAllocationsRead,
    CategoryDetailsRead,
    CategoryRead,
    GoalApplyRead,
    GoalRead,
)


logger = logging.getLogger(__name__)


class BudgetGateway(Protocol):
    """What the planner store needs from persistence."""

    async def load_snapshot(self, month: str) -> BudgetSnapshotRead: ...

    async def upsert_allocation(self, category_id: uuid.UUID, month: str, assigned_cents: int) -> AllocationRead: ...

    async def bulk_upsert_allocations(
        self, month: str, assignments: Sequence[Tuple[uuid.UUID, int]]
    ) -> List[AllocationRead]: ...

    async def apply_goal(self, category_id: uuid.UUID, month: str) -> GoalApplyRead: ...

    async def create_category(self, group_name: str, name: str, icon: Optional[str] = None) -> CategoryRead: ...

    async def update_category(self, category_id: uuid.UUID, **fields: Any) -> CategoryRead: ...

    async def category_details(self, category_id: uuid.UUID, month: str) -> CategoryDetailsRead: ...

    async def save_goal(self, category_id: uuid.UUID, payload: Dict[str, Any]) -> GoalRead: ...

    async def remove_goal(self, category_id: uuid.UUID) -> None: ...


def _error_from_response(response: httpx.Response) -> Exception:
    message = response.reason_phrase or "Request failed"
    field = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail") or message
        field = body.get("field")
    message = str(message)

    if response.status_code in (400, 422):
        return BudgetValidationError(message, field=field)
    if response.status_code == 404:
        return NotFoundError(message)
    return PersistenceError(message, status_code=response.status_code)


class BudgetApiClient:
    """HTTP client for the budget API.

    Server-side failures come back as the same error types the services
    raise: 400 as BudgetValidationError, 404 as NotFoundError, anything
    else (including transport errors) as PersistenceError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        org_id: Optional[uuid.UUID] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url or settings.api_base_url, timeout=timeout)
        self._headers = {"X-Org-Id": str(org_id)} if org_id else {}

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, method: str, path: str, *, json=None, params=None):
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.warning("budget_api_unreachable method=%s path=%s error=%s", method, path, exc)
            raise PersistenceError(f"Could not reach the budget API: {exc}") from exc

        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.info("budget_api_error method=%s path=%s status=%d", method, path, response.status_code)
            raise error
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def load_snapshot(self, month: str) -> BudgetSnapshotRead:
        data = await self._request("GET", "/budget/categories", params={"month": month})
        return BudgetSnapshotRead.model_validate(data)

    async def upsert_allocation(self, category_id: uuid.UUID, month: str, assigned_cents: int) -> AllocationRead:
        data = await self._request(
            "PUT",
            "/budget/allocation",
            json={"categoryId": str(category_id), "month": month, "assigned_cents": assigned_cents},
        )
        return AllocationEnvelope.model_validate(data).allocation

    async def bulk_upsert_allocations(
        self, month: str, assignments: Sequence[Tuple[uuid.UUID, int]]
    ) -> List[AllocationRead]:
        payload = {
            "month": month,
            "assignments": [
                {"categoryId": str(category_id), "assigned_cents": assigned_cents}
                for category_id, assigned_cents in assignments
            ],
        }
        data = await self._request("POST", "/budget/allocation/bulk", json=payload)
        return BulkAllocationsRead.model_validate(data).allocations

    async def apply_goal(self, category_id: uuid.UUID, month: str) -> GoalApplyRead:
        data = await self._request("POST", f"/budget/goal/{category_id}/apply", json={"month": month})
        return GoalApplyRead.model_validate(data)

    async def create_category(self, group_name: str, name: str, icon: Optional[str] = None) -> CategoryRead:
        data = await self._request(
            "POST", "/budget/category", json={"group_name": group_name, "name": name, "icon": icon}
        )
        return CategoryRead.model_validate(data)

    async def update_category(self, category_id: uuid.UUID, **fields: Any) -> CategoryRead:
        data = await self._request("PATCH", f"/budget/category/{category_id}", json=fields)
        return CategoryRead.model_validate(data)

    async def category_details(self, category_id: uuid.UUID, month: str) -> CategoryDetailsRead:
        data = await self._request("GET", f"/budget/category/{category_id}/details", params={"month": month})
        return CategoryDetailsRead.model_validate(data)

    async def save_goal(self, category_id: uuid.UUID, payload: Dict[str, Any]) -> GoalRead:
        data = await self._request("PUT", f"/budget/goal/{category_id}", json=payload)
        return GoalRead.model_validate(data)

    async def remove_goal(self, category_id: uuid.UUID) -> None:
        await self._request("DELETE", f"/budget/goal/{category_id}")
