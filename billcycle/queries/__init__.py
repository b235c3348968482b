"""Transaction query package."""

from billcycle.queries.filters import TransactionFilter, filter_transactions, totals_by

__all__ = ["TransactionFilter", "filter_transactions", "totals_by"]
