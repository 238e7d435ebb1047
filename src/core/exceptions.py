"""
Exception types raised by the core package.
"""


class ExpenseFlowError(Exception):
    """Base class for application errors."""


class ConfigurationError(ExpenseFlowError):
    """A required setting is missing."""


class ExpenseNotFoundError(ExpenseFlowError):
    def __init__(self, expense_id: str):
        super().__init__(f"Expense {expense_id} not found")
        self.expense_id = expense_id


class ConfirmationRequiredError(ExpenseFlowError):
    """A destructive action was requested without explicit confirmation."""

    def __init__(self, action: str):
        super().__init__(f"Action '{action}' requires explicit confirmation")
        self.action = action


class AIServiceError(ExpenseFlowError):
    """The generative AI call failed or returned an unusable reply."""


class ReceiptParseError(AIServiceError):
    """A receipt could not be interpreted."""


class SyncError(ExpenseFlowError):
    """Reading or writing the remote mirror failed."""


class AuthError(ExpenseFlowError):
    """The magic-link provider rejected a request."""
