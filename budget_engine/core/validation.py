from typing import Optional

from .errors import BudgetValidationError
from .goals import GoalCadence, GoalType


NAME_MAX_LENGTH = 80
NOTE_MAX_LENGTH = 500


def clean_name(value, field: str = "name") -> str:
    if not isinstance(value, str) or not value.strip():
        raise BudgetValidationError("Enter a valid name", field=field)
    name = value.strip()
    if len(name) > NAME_MAX_LENGTH:
        raise BudgetValidationError(f"Name must be at most {NAME_MAX_LENGTH} characters", field=field)
    return name


def clean_note(value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise BudgetValidationError("Invalid note", field="note")
    note = value.strip()[:NOTE_MAX_LENGTH]
    return note or None


def validate_goal_type(value) -> GoalType:
    try:
        return GoalType(value)
    except ValueError:
        raise BudgetValidationError("Invalid goal type", field="type")


def validate_cadence(value) -> Optional[GoalCadence]:
    if value is None:
        return None
    try:
        return GoalCadence(value)
    except ValueError:
        raise BudgetValidationError("Invalid cadence", field="cadence")


def validate_due_day(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 31:
        raise BudgetValidationError("Due day must be between 1 and 31", field="due_day_of_month")
    return value
