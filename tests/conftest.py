import uuid
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from budget_engine.config import settings
from budget_engine.database import get_session, init_db
from budget_engine.main import app
from budget_engine.models.category import BudgetCategory
from budget_engine.models.goal import BudgetGoal
from budget_engine.models.transaction import AccountTransaction


ORG_ID = uuid.UUID(settings.default_org_id)


@pytest.fixture
def engine(monkeypatch):
    # Tests create the categories they need.
    monkeypatch.setattr(settings, "seed_default_categories", False)
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_category(session):
    def _make(name="Groceries", group_name="Needs", rollover=True, sort=100, is_hidden=False):
        category = BudgetCategory(
            org_id=ORG_ID,
            group_name=group_name,
            name=name,
            sort=sort,
            rollover=rollover,
            is_hidden=is_hidden,
        )
        session.add(category)
        session.commit()
        session.refresh(category)
        return category

    return _make


@pytest.fixture
def make_goal(session):
    def _make(category, type="MFG", amount_cents=5000, target_month=None):
        goal = BudgetGoal(
            org_id=ORG_ID,
            category_id=category.id,
            type=type,
            amount_cents=amount_cents,
            target_month=target_month,
        )
        session.add(goal)
        session.commit()
        return goal

    return _make


@pytest.fixture
def add_transaction(session):
    def _add(amount_cents, occurred_on, category=None, direction="outflow"):
        if isinstance(occurred_on, str):
            occurred_on = date.fromisoformat(occurred_on)
        txn = AccountTransaction(
            org_id=ORG_ID,
            category_id=category.id if category is not None else None,
            amount_cents=amount_cents,
            direction=direction,
            occurred_on=occurred_on,
        )
        session.add(txn)
        session.commit()
        return txn

    return _add
