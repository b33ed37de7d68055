from types import SimpleNamespace

import pytest

from budget_engine.core.goals import project_goal


ALLOCATION = SimpleNamespace(assigned_cents=200, activity_cents=0, available_cents=500, prev_available_cents=300)


def _goal(type, amount_cents, target_month=None):
    return SimpleNamespace(type=type, amount_cents=amount_cents, target_month=target_month)


def test_target_balance_needs_the_gap_to_available():
    projection = project_goal(_goal("TB", 1000), ALLOCATION, "2025-05")
    assert projection.required_this_month == 500
    assert projection.remaining_to_goal == 500


def test_monthly_funding_needs_the_gap_to_assigned():
    projection = project_goal(_goal("MFG", 600), ALLOCATION, "2025-05")
    assert projection.required_this_month == 400
    assert projection.remaining_to_goal == 400


def test_monthly_funding_partially_assigned():
    allocation = SimpleNamespace(assigned_cents=2000, available_cents=2000)
    projection = project_goal(_goal("MFG", 5000), allocation, "2025-05")
    assert projection.required_this_month == 3000
    assert projection.remaining_to_goal == 3000
    assert projection.progress_ratio == pytest.approx(0.4)


def test_target_by_date_spreads_the_shortfall():
    projection = project_goal(_goal("TBD", 2000, "2025-07-01"), ALLOCATION, "2025-05")
    assert projection.required_this_month == 500
    # 200 of the 500 installment is already assigned
    assert projection.remaining_to_goal == 300


def test_target_by_date_rounds_up():
    allocation = SimpleNamespace(assigned_cents=0, available_cents=0)
    projection = project_goal(_goal("TBD", 1000, "2025-07"), allocation, "2025-05")
    assert projection.required_this_month == 334


def test_target_by_date_in_the_past_needs_nothing():
    projection = project_goal(_goal("TBD", 2000, "2025-03"), ALLOCATION, "2025-05")
    assert projection.required_this_month == 0
    assert projection.remaining_to_goal == 0


def test_target_by_date_compares_months_across_years():
    allocation = SimpleNamespace(assigned_cents=0, available_cents=0)
    projection = project_goal(_goal("TBD", 1200, "2025-02"), allocation, "2024-11")
    assert projection.required_this_month == 300


def test_missing_goal_or_allocation():
    assert project_goal(None, ALLOCATION, "2025-05") is None
    assert project_goal(_goal("MFG", 100), None, "2025-05") is None


def test_progress_is_clamped():
    overfunded = SimpleNamespace(assigned_cents=0, available_cents=9000)
    assert project_goal(_goal("TB", 1000), overfunded, "2025-05").progress_ratio == 1.0
    overspent = SimpleNamespace(assigned_cents=0, available_cents=-500)
    assert project_goal(_goal("TB", 1000), overspent, "2025-05").progress_ratio == 0.0
    assert project_goal(_goal("TB", 0), overspent, "2025-05").progress_ratio == 1.0
