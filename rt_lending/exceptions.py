"""Custom exceptions for the RT lending core."""


class LendingError(Exception):
    """Base exception for all lending errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ValidationError(LendingError, ValueError):
    """Raised when user input is rejected before it reaches the core."""

    def __init__(self, field: str, message: str):
        super().__init__(message, {'field': field})
        self.field = field


class RecordNotFoundError(LendingError):
    """Raised when a record id does not exist in the store."""
    pass


class LoanNotFoundError(RecordNotFoundError):
    """Raised when a loan cannot be found."""

    def __init__(self, loan_id: str):
        super().__init__(f"Loan '{loan_id}' not found", {'loan_id': loan_id})
        self.loan_id = loan_id


class TransactionNotFoundError(RecordNotFoundError):
    """Raised when a cash transaction cannot be found."""

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction '{transaction_id}' not found",
            {'transaction_id': transaction_id}
        )
        self.transaction_id = transaction_id


class IllegalTransitionError(LendingError):
    """Raised when a loan status change is not an edge of the lifecycle."""

    def __init__(self, current, requested):
        super().__init__(
            f"Cannot move loan from {current.name} to {requested.name}",
            {'current': current.name, 'requested': requested.name}
        )
        self.current = current
        self.requested = requested


class PermissionDeniedError(LendingError):
    """Raised when the acting role lacks the permission for a mutation."""

    def __init__(self, role, permission):
        super().__init__(
            f"Role {role.value} is not allowed to {permission.value}",
            {'role': role.value, 'permission': permission.value}
        )
        self.role = role
        self.permission = permission


class SyncError(LendingError):
    """Raised when the spreadsheet service cannot be read."""
    pass
