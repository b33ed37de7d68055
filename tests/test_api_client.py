import asyncio
import json
import uuid

import httpx
import pytest

from budget_engine.client.api import BudgetApiClient
from budget_engine.client.planner import PlannerStore
from budget_engine.core.errors import BudgetValidationError, NotFoundError, PersistenceError
from budget_engine.main import app


ORG_ID = uuid.uuid4()


def _mock_client(handler):
    transport = httpx.MockTransport(handler)
    return BudgetApiClient(
        org_id=ORG_ID,
        client=httpx.AsyncClient(transport=transport, base_url="http://budget.test"),
    )


def test_upsert_allocation_sends_wire_shape():
    category_id = uuid.uuid4()
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["org"] = request.headers["X-Org-Id"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "allocation": {
                    "category_id": str(category_id),
                    "month": "2024-06",
                    "assigned_cents": 1500,
                    "activity_cents": 0,
                    "available_cents": 1500,
                    "prev_available_cents": 0,
                }
            },
        )

    row = asyncio.run(_mock_client(handler).upsert_allocation(category_id, "2024-06", 1500))

    assert seen == {
        "method": "PUT",
        "path": "/budget/allocation",
        "org": str(ORG_ID),
        "body": {"categoryId": str(category_id), "month": "2024-06", "assigned_cents": 1500},
    }
    assert row.category_id == category_id
    assert row.available_cents == 1500


@pytest.mark.parametrize(
    "status_code, error_type",
    [(400, BudgetValidationError), (422, BudgetValidationError), (404, NotFoundError), (503, PersistenceError)],
)
def test_error_responses_are_mapped(status_code, error_type):
    def handler(request):
        return httpx.Response(status_code, json={"message": "nope", "field": "month"})

    with pytest.raises(error_type) as exc:
        asyncio.run(_mock_client(handler).load_snapshot("2024-06"))
    assert exc.value.message == "nope"


def test_validation_error_keeps_field():
    def handler(request):
        return httpx.Response(400, json={"message": "Invalid month, use YYYY-MM", "field": "month"})

    with pytest.raises(BudgetValidationError) as exc:
        asyncio.run(_mock_client(handler).apply_goal(uuid.uuid4(), "2024-06"))
    assert exc.value.field == "month"


def test_transport_errors_become_persistence_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PersistenceError):
        asyncio.run(_mock_client(handler).remove_goal(uuid.uuid4()))


def test_remove_goal_accepts_empty_response():
    def handler(request):
        assert request.method == "DELETE"
        return httpx.Response(204)

    assert asyncio.run(_mock_client(handler).remove_goal(uuid.uuid4())) is None


def test_planner_against_the_app(client):
    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://budget.test") as http:
            api = BudgetApiClient(org_id=ORG_ID, client=http)
            created = await api.create_category("Needs", "Groceries")

            store = PlannerStore(api)
            await store.initialize("2024-06")
            games = await store.create_category("Wants", "Games")
            assert [c.id for c in store.active_categories()] == [created.id, games.id]
            assert store.toast.message == "Category created"

            await store.set_assigned(created.id, 2500)
            await store.save_goal(created.id, "MFG", 4000)
            result = await store.apply_goal(created.id)
            assert result.diff_cents == 1500

            failed = await store.set_assigned(uuid.uuid4(), 100)
            assert failed is None
            assert store.toast.kind == "error"

            details = await store.category_details(created.id)
            assert store.details[created.id] == details
            snapshot = await api.load_snapshot("2024-06")
            return store, details, snapshot

    store, details, snapshot = asyncio.run(scenario())

    assert store.allocation(snapshot.categories[0].id) is not None
    assert store.totals().assigned == 4000
    assert snapshot.total_assigned_cents == 4000
    assert store.ready_to_assign() == snapshot.ready_to_assign_cents
    assert details.summary.assigned_this_month_cents == 4000
