"""
Transaction Classifier

Puts every transaction in exactly one bucket and answers the structural
questions the other components ask (is this a parent, which statement
period is this charge on, which records fall in a month).

DESIGN DECISION: Installment plans are stored as a *parent* record holding
the total principal plus virtual monthly records. Only the monthly
records are ever shown or counted toward budgets and cash. A record is a
parent only when it says so explicitly (``is_budget_impacting=False``);
older single-record installments lack that flag and stay visible.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable

from billcycle.engine.cycles import payment_month, statement_period
from billcycle.engine.dates import ZERO, end_of_month, parse_month
from billcycle.models.records import (
    Card,
    PaymentMethod,
    RecurringType,
    Transaction,
)
from billcycle.models.views import TransactionBucket, TransactionBuckets


def bucket(txn: Transaction) -> TransactionBucket:
    """Classify a transaction as installment, recurring or direct."""
    if txn.is_recurring:
        rule = txn.recurring_rule
        if rule is not None and rule.type == RecurringType.INSTALLMENT:
            return TransactionBucket.INSTALLMENT
        return TransactionBucket.RECURRING
    return TransactionBucket.DIRECT


def is_parent(txn: Transaction) -> bool:
    """True for the principal-holding record of an installment plan."""
    rule = txn.recurring_rule
    return (
        txn.is_recurring
        and rule is not None
        and rule.type == RecurringType.INSTALLMENT
        and not txn.is_virtual
        and not txn.parent_transaction_id
        and txn.is_budget_impacting is False
    )


def is_virtual(txn: Transaction) -> bool:
    return bool(txn.is_virtual or txn.parent_transaction_id)


def viewable(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Everything except installment parents."""
    return [t for t in transactions if not is_parent(t)]


def group_by_bucket(transactions: Iterable[Transaction]) -> TransactionBuckets:
    """Split viewable transactions into their buckets."""
    grouped: dict[TransactionBucket, list[Transaction]] = defaultdict(list)
    for txn in viewable(transactions):
        grouped[bucket(txn)].append(txn)
    return TransactionBuckets(
        direct=grouped[TransactionBucket.DIRECT],
        recurring=grouped[TransactionBucket.RECURRING],
        installment=grouped[TransactionBucket.INSTALLMENT],
    )


def virtual_children(parent_id: str, transactions: Iterable[Transaction]) -> list[Transaction]:
    """Monthly records materialized from the parent ``parent_id``."""
    return [t for t in transactions if t.parent_transaction_id == parent_id]


def is_card_charge(txn: Transaction, card_id: str) -> bool:
    return txn.payment_method == PaymentMethod.CARD and txn.card_id == card_id


def transactions_for_statement_period(
    card: Card,
    payment_key: str,
    transactions: Iterable[Transaction],
) -> list[Transaction]:
    """Viewable card charges dated within the statement period of ``payment_key``."""
    period = statement_period(card, payment_key)
    return [
        t for t in viewable(transactions)
        if is_card_charge(t, card.id) and period.contains(t.date)
    ]


def transactions_by_payment_month(
    card: Card,
    transactions: Iterable[Transaction],
) -> dict[str, list[Transaction]]:
    """Viewable charges on ``card`` keyed by the payment month they bill into."""
    grouped: dict[str, list[Transaction]] = defaultdict(list)
    for txn in viewable(transactions):
        if is_card_charge(txn, card.id):
            grouped[payment_month(txn.date, card)].append(txn)
    return dict(grouped)


def in_month(day: date, month_key: str) -> bool:
    first = parse_month(month_key)
    return first <= day <= end_of_month(first)


def transactions_for_month(
    transactions: Iterable[Transaction],
    month_key: str,
) -> list[Transaction]:
    """Transactions dated anywhere in the calendar month, future days included."""
    return [t for t in transactions if in_month(t.date, month_key)]


def installment_principal(
    transactions: Iterable[Transaction],
    include_parents: bool = False,
) -> Decimal:
    """
    Sum of installment amounts.

    Parents only contribute their total principal when ``include_parents``
    is set (net-worth style folds); otherwise the monthly records are
    summed as ordinary expenses.
    """
    total = ZERO
    for txn in transactions:
        if bucket(txn) != TransactionBucket.INSTALLMENT:
            continue
        if is_parent(txn) and not include_parents:
            continue
        total += txn.amount
    return total


def is_transfer(txn: Transaction) -> bool:
    """Bank-to-bank movement between two accounts."""
    return bool(txn.bank_account_id and txn.to_bank_account_id)


def is_covered_elsewhere(txn: Transaction, profile_id: str) -> bool:
    """
    True when the charge is not this profile's spend: someone else paid it,
    or it is another profile's record this profile paid on their behalf.
    """
    if txn.paid_by_other:
        return True
    return txn.paid_by_other_profile_id == profile_id and txn.profile_id != profile_id
