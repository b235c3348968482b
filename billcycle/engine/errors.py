"""Domain errors raised by the ledger engine."""


class LedgerError(Exception):
    """Base exception for ledger domain violations."""
    pass


class InvalidPaymentError(LedgerError):
    """A payment amount is negative or not a finite number."""
    pass


class ProtectedCategoryError(LedgerError):
    """Attempted to delete one of the default categories."""
    pass


class InvalidCycleDayError(LedgerError):
    """A cycle close or payment due day is outside 1-31."""
    pass


class LoanPlanError(LedgerError):
    """A loan plan cannot be computed from its inputs."""
    pass
