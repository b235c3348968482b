"""
Statement Ledger

One statement row per (card, payment month). Every operation here is a
lookup-then-write upsert over the caller's current statements and returns
the new or updated record; the caller persists it.

DESIGN DECISION: Nothing in this module mutates its inputs. Updates are
re-validated through the Statement model so an update can never store a
negative amount or a malformed month key.

Paid state rules:
- ``is_paid`` always equals ``paid_amount >= effective_amount`` once
  anything has been paid, and is re-derived whenever charges move the amount
- a payment never raises ``paid_amount`` past a non-zero effective amount;
  a payment made before any charge is kept in full
- marking paid covers the effective amount and clears ``is_unbilled``
- marking unpaid resets ``paid_amount`` but keeps the payment history
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional

import structlog

from billcycle.engine.classifier import (
    bucket,
    is_card_charge,
    is_parent,
    transactions_for_statement_period,
)
from billcycle.engine.cycles import find_card_statement, payment_month
from billcycle.engine.dates import ZERO, is_finite_number, round_currency, to_decimal
from billcycle.engine.errors import InvalidPaymentError
from billcycle.models.records import (
    Card,
    Payment,
    Statement,
    Transaction,
    TransactionType,
)
from billcycle.models.views import BillTotals, CardDeletion, TransactionBucket

logger = structlog.get_logger(__name__)

_KEEP = object()


def find_statement(
    statements: Iterable[Statement],
    card_id: str,
    month_key: str,
) -> Optional[Statement]:
    return find_card_statement(statements, card_id, month_key)


def statements_for_card(statements: Iterable[Statement], card_id: str) -> list[Statement]:
    return sorted(
        (s for s in statements if s.card_id == card_id),
        key=lambda s: s.month_str,
    )


def _apply(statement: Statement, changes: Mapping) -> Statement:
    return Statement.model_validate({**statement.model_dump(), **changes})


def _settled(statement: Statement, previous: Optional[Statement] = None) -> Statement:
    """
    Re-derive paid state after the amount or adjustment moved.

    ``previous`` is the statement before the change. One marked paid with
    no paid amount on record covers what it was worth before the change.
    """
    before = previous or statement
    if not statement.payments and not before.is_paid:
        return statement
    covered = statement.paid_amount
    if before.is_paid and not covered:
        covered = before.effective_amount
    paid = covered >= statement.effective_amount
    changes = {"paid_amount": covered, "is_paid": paid}
    if paid:
        changes["is_unbilled"] = False
    return _apply(statement, changes)


def update_statement(
    statements: Iterable[Statement],
    card_id: str,
    month_key: str,
    **changes,
) -> Statement:
    """
    Merge ``changes`` into the (card, month) statement, creating it if absent.

    A new row starts at amount 0, unpaid and unbilled before ``changes``
    are applied.
    """
    existing = find_statement(statements, card_id, month_key)
    if existing is not None:
        return _apply(existing, changes)
    return Statement.model_validate({
        "card_id": card_id,
        "month_str": month_key,
        "amount": ZERO,
        "is_paid": False,
        "is_unbilled": True,
        **changes,
    })


def _amended(
    statements: Iterable[Statement],
    card_id: str,
    month_key: str,
    **changes,
) -> Statement:
    statements = list(statements)
    previous = find_statement(statements, card_id, month_key)
    return _settled(update_statement(statements, card_id, month_key, **changes), previous)


def set_amount(
    statements: Iterable[Statement],
    card_id: str,
    month_key: str,
    amount,
) -> Statement:
    """Set the computed amount; paid state follows recorded payments."""
    return _amended(statements, card_id, month_key, amount=round_currency(amount))


def set_adjustment(
    statements: Iterable[Statement],
    card_id: str,
    month_key: str,
    adjusted_amount,
) -> Statement:
    """Set or clear (``None``) the manually adjusted amount."""
    value = None if adjusted_amount is None else round_currency(adjusted_amount)
    return _amended(statements, card_id, month_key, adjusted_amount=value)


def set_overrides(
    statements: Iterable[Statement],
    card: Card,
    month_key: str,
    due_date=_KEEP,
    close_date=_KEEP,
    payment_date=_KEEP,
    cycle_close_day=_KEEP,
    notes=_KEEP,
) -> Statement:
    """
    Set or clear (``None``) per-statement overrides.

    A custom close day equal to the card's own close day is cleared rather
    than stored.
    """
    changes = {}
    if due_date is not _KEEP:
        changes["custom_due_date"] = due_date
    if close_date is not _KEEP:
        changes["custom_close_date"] = close_date
    if payment_date is not _KEEP:
        changes["custom_payment_date"] = payment_date
    if cycle_close_day is not _KEEP:
        if cycle_close_day == card.cycle_close_day:
            cycle_close_day = None
        changes["custom_cycle_close_day"] = cycle_close_day
    if notes is not _KEEP:
        changes["notes"] = notes
    return update_statement(statements, card.id, month_key, **changes)


def record_payment(
    statements: Iterable[Statement],
    card_id: str,
    month_key: str,
    amount,
    paid_on: date,
) -> Optional[Statement]:
    """
    Apply a payment to the (card, month) statement.

    Returns the updated statement, or the existing one untouched (None if
    there is none) for a zero payment.

    Raises:
        InvalidPaymentError: If ``amount`` is negative or not a finite
            number. Nothing is changed.
    """
    if not is_finite_number(amount):
        raise InvalidPaymentError(f"Payment amount must be a finite number, got {amount!r}")
    value = to_decimal(amount)
    if value < 0:
        raise InvalidPaymentError(f"Payment amount cannot be negative, got {value}")

    statements = list(statements)
    if value == 0:
        logger.debug("zero_payment_ignored", card_id=card_id, month=month_key)
        return find_statement(statements, card_id, month_key)

    value = round_currency(value)
    statement = update_statement(statements, card_id, month_key)
    paid_amount = statement.paid_amount + value
    if statement.effective_amount > 0:
        paid_amount = min(paid_amount, statement.effective_amount)
    is_paid = paid_amount >= statement.effective_amount
    changes = {
        "payments": [*statement.payments, Payment(amount=value, date=paid_on)],
        "paid_amount": paid_amount,
        "is_paid": is_paid,
    }
    if is_paid:
        changes["is_unbilled"] = False
    return _apply(statement, changes)


def toggle_paid(
    statements: Iterable[Statement],
    card_id: str,
    month_key: str,
    fallback_total=ZERO,
) -> Statement:
    """
    Flip the paid state of a statement.

    With no statement yet, a paid statement is created whose amount is
    ``fallback_total`` (usually the month's charge total).
    """
    existing = find_statement(statements, card_id, month_key)
    if existing is None:
        return Statement(
            card_id=card_id,
            month_str=month_key,
            amount=round_currency(fallback_total),
            paid_amount=round_currency(fallback_total),
            is_paid=True,
            is_unbilled=False,
        )
    if existing.is_paid:
        return _apply(existing, {"is_paid": False, "paid_amount": ZERO})
    return _apply(existing, {
        "is_paid": True,
        "is_unbilled": False,
        "paid_amount": max(existing.paid_amount, existing.effective_amount),
    })


def toggle_billed(
    statements: Iterable[Statement],
    card_id: str,
    month_key: str,
) -> Statement:
    """Flip whether the statement is still unbilled (estimated)."""
    existing = find_statement(statements, card_id, month_key)
    if existing is None:
        return update_statement(statements, card_id, month_key, is_unbilled=False)
    return _apply(existing, {"is_unbilled": not bool(existing.is_unbilled)})


# =============================================================================
# CHARGE LINKING
# =============================================================================

def _linkable(card: Card, txn: Transaction) -> bool:
    return (
        txn.type == TransactionType.EXPENSE
        and is_card_charge(txn, card.id)
        and not is_parent(txn)
    )


def apply_charge(
    card: Card,
    statements: Iterable[Statement],
    txn: Transaction,
) -> Optional[Statement]:
    """
    Add a card expense to the statement of its payment month.

    Returns None when the transaction is not a charge on ``card``.
    """
    if not _linkable(card, txn):
        return None
    statements = list(statements)
    month_key = payment_month(txn.date, card)
    existing = find_statement(statements, card.id, month_key)
    base = existing.amount if existing is not None else ZERO
    return _amended(statements, card.id, month_key, amount=base + txn.amount)


def remove_charge(
    card: Card,
    statements: Iterable[Statement],
    txn: Transaction,
) -> Optional[Statement]:
    """Subtract a deleted card expense from its statement, floored at 0."""
    if not _linkable(card, txn):
        return None
    month_key = payment_month(txn.date, card)
    existing = find_statement(statements, card.id, month_key)
    if existing is None:
        return None
    reduced = _apply(existing, {"amount": max(ZERO, existing.amount - txn.amount)})
    return _settled(reduced, existing)


def period_charge_total(
    card: Card,
    month_key: str,
    transactions: Iterable[Transaction],
) -> Decimal:
    """Total of the viewable expense charges billed into ``month_key``."""
    return round_currency(sum(
        (t.amount for t in transactions_for_statement_period(card, month_key, transactions)
         if t.type == TransactionType.EXPENSE),
        ZERO,
    ))


def mark_statement_transactions(
    card: Card,
    month_key: str,
    transactions: Iterable[Transaction],
    paid: bool,
    paid_on: Optional[date] = None,
) -> list[Transaction]:
    """Copies of the statement's charges with their paid flag set."""
    return [
        t.model_copy(update={"is_paid": paid, "paid_date": paid_on if paid else None})
        for t in transactions_for_statement_period(card, month_key, transactions)
    ]


# =============================================================================
# CARD-LEVEL FOLDS
# =============================================================================

def card_deletion(
    card_id: str,
    statements: Iterable[Statement],
    transactions: Iterable[Transaction],
) -> CardDeletion:
    """
    Everything that goes away with a card.

    All of the card's statements and every installment record (parent and
    terms) charged to it. Other transactions keep their dangling card id
    and render as "Unknown Card".
    """
    return CardDeletion(
        card_id=card_id,
        statement_ids=[s.id for s in statements if s.card_id == card_id],
        transaction_ids=[
            t.id for t in transactions
            if t.card_id == card_id and bucket(t) == TransactionBucket.INSTALLMENT
        ],
    )


def bill_totals(
    cards: Iterable[Card],
    statements: Iterable[Statement],
    month_key: str,
    fallback_totals: Optional[Mapping[str, Decimal]] = None,
) -> BillTotals:
    """
    Bill, paid and unpaid totals across ``cards`` for one payment month.

    Cards without a statement contribute their fallback total (if any) as
    unpaid.
    """
    statements = list(statements)
    fallback_totals = fallback_totals or {}
    bill_total = paid_total = unpaid_total = ZERO

    for card in cards:
        statement = find_statement(statements, card.id, month_key)
        if statement is None:
            amount = to_decimal(fallback_totals.get(card.id, ZERO))
            bill_total += amount
            unpaid_total += amount
            continue
        bill_total += statement.effective_amount
        if statement.is_paid:
            covered = statement.paid_amount or statement.effective_amount
            paid_total += min(covered, statement.effective_amount)
        else:
            paid_total += statement.paid_amount
            unpaid_total += statement.outstanding_amount

    return BillTotals(
        month_str=month_key,
        bill_total=round_currency(bill_total),
        paid_total=round_currency(paid_total),
        unpaid_total=round_currency(unpaid_total),
    )
