"""
Transaction Filters

DESIGN DECISION: Filtering is DETERMINISTIC and runs over the records the
caller already holds. A TransactionFilter only narrows; it never adds,
estimates or reorders beyond a stable date sort. Every criterion left
unset matches everything.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from billcycle.engine.dates import ZERO, month_str, round_currency
from billcycle.models.records import (
    PaymentMethod,
    RecurringType,
    Transaction,
    TransactionType,
)


class TransactionFilter(BaseModel):
    """Criteria for narrowing a transaction list."""

    profile_ids: list[str] = Field(
        default_factory=list,
        description="Match any of these profiles (empty matches all)"
    )
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    type: Optional[TransactionType] = None
    category_ids: list[str] = Field(default_factory=list)
    payment_method: Optional[PaymentMethod] = None
    card_id: Optional[str] = None
    is_recurring: Optional[bool] = None
    recurring_type: Optional[RecurringType] = None
    installment_group_id: Optional[str] = None
    search: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Case-insensitive match on description or notes"
    )

    @field_validator('search')
    @classmethod
    def blank_search_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @model_validator(mode='after')
    def validate_range(self) -> 'TransactionFilter':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self

    def matches(self, txn: Transaction) -> bool:
        if self.profile_ids and txn.profile_id not in self.profile_ids:
            return False
        if self.type and txn.type != self.type:
            return False
        if self.date_from and txn.date < self.date_from:
            return False
        if self.date_to and txn.date > self.date_to:
            return False
        if self.category_ids and txn.category_id not in self.category_ids:
            return False
        if self.payment_method and txn.payment_method != self.payment_method:
            return False
        if self.card_id and txn.card_id != self.card_id:
            return False
        if self.is_recurring is not None and txn.is_recurring != self.is_recurring:
            return False

        rule = txn.recurring_rule
        if self.recurring_type and (rule is None or rule.type != self.recurring_type):
            return False
        if self.installment_group_id and (
            rule is None or rule.installment_group_id != self.installment_group_id
        ):
            return False

        if self.search:
            haystack = f"{txn.description}\n{txn.notes or ''}".lower()
            if self.search not in haystack:
                return False
        return True


def filter_transactions(
    transactions: Iterable[Transaction],
    flt: Optional[TransactionFilter] = None,
) -> list[Transaction]:
    """Transactions matching ``flt``, oldest first. No filter returns everything."""
    if flt is None:
        return sorted(transactions, key=lambda t: t.date)
    return sorted((t for t in transactions if flt.matches(t)), key=lambda t: t.date)


def totals_by(transactions: Iterable[Transaction], group_by: str) -> dict[str, Decimal]:
    """
    Sum amounts grouped by ``category``, ``month``, ``card`` or ``type``.

    Transactions without a card are grouped under "none" for ``card``.
    """
    groups: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in transactions:
        if group_by == "category":
            key = txn.category_id
        elif group_by == "month":
            key = month_str(txn.date)
        elif group_by == "card":
            key = txn.card_id or "none"
        elif group_by == "type":
            key = txn.type.value
        else:
            raise ValueError(f"Unsupported grouping: {group_by}")
        groups[key] += txn.amount
    return {key: round_currency(total) for key, total in groups.items()}
