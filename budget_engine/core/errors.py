from typing import Optional


class BudgetError(Exception):
    """Base error for the budget engine."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BudgetValidationError(BudgetError):
    """Malformed input, rejected before any state mutation or write."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(BudgetError):
    pass


class PersistenceError(BudgetError):
    """A write or read against the store (or the HTTP transport) failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
