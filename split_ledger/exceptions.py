"""Custom exceptions for split_ledger."""


class SplitLedgerError(Exception):
    """Base exception for all split_ledger errors.

    Carries a machine-readable code and an HTTP-style status hint so the
    calling layer can translate it into a response without inspecting types.
    """

    def __init__(self, message: str, code: str = "SPLIT_LEDGER_ERROR", status_code: int = 400):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class ValidationError(SplitLedgerError):
    """Raised when input is malformed or contradictory."""

    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR", status_code=400)


class CalculationError(SplitLedgerError):
    """Raised when a computation cannot reconcile its totals."""

    def __init__(self, message: str):
        super().__init__(message, code="CALCULATION_ERROR", status_code=400)


class NotFoundError(SplitLedgerError):
    """Raised when a group or expense does not exist."""

    def __init__(self, message: str):
        super().__init__(message, code="NOT_FOUND", status_code=404)


class PermissionDeniedError(SplitLedgerError):
    """Raised when a user may not perform an operation on a group or expense."""

    def __init__(self, message: str):
        super().__init__(message, code="FORBIDDEN", status_code=403)


class ConflictError(SplitLedgerError):
    """Raised when a record already exists."""

    def __init__(self, message: str):
        super().__init__(message, code="CONFLICT", status_code=409)
