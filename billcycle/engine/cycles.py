"""
Cycle Resolver

Maps charge dates to statement periods and payment due dates from a
card's cycle configuration.

DESIGN DECISION: A charge is keyed by its *payment month*, the calendar
month in which the statement containing it must be paid. Two shifts
produce it:

- cycle shift: 1 when the charge falls on or after the close day (the
  charge lands on the next cycle's statement),
- payment shift: 1 when the due day is numerically before the close day
  (the closed cycle is paid in the following month).

The statement period for a payment month is derived backwards from the
same rule so that every date belongs to exactly one period and
``statement_period(card, payment_month(d, card)).contains(d)`` holds for
every card and every day. Periods tile the calendar: each period starts
the day after the previous one ends, which matters when a close day of
29-31 is clamped in a short month.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from billcycle.engine.dates import (
    add_months,
    clamp_day,
    month_str,
    parse_month,
    start_of_month,
)
from billcycle.engine.errors import InvalidCycleDayError
from billcycle.models.records import Card, Statement
from billcycle.models.views import StatementPeriod


def _check_day(value: int, role: str) -> int:
    if not isinstance(value, int) or not 1 <= value <= 31:
        raise InvalidCycleDayError(f"{role} must be between 1 and 31, got {value!r}")
    return value


def payment_shift(card: Card) -> int:
    """1 when a closed cycle is paid in the month after it closes."""
    close_day = _check_day(card.cycle_close_day, "cycle_close_day")
    due_day = _check_day(card.payment_due_day, "payment_due_day")
    return 1 if due_day < close_day else 0


def payment_month(day: date, card: Card) -> str:
    """The YYYY-MM payment month whose statement includes a charge on ``day``."""
    close_day = _check_day(card.cycle_close_day, "cycle_close_day")
    cycle_shift = 1 if day.day >= close_day else 0
    return month_str(add_months(start_of_month(day), cycle_shift + payment_shift(card)))


def _close_month(card: Card, payment_key: str) -> date:
    return add_months(parse_month(payment_key), -payment_shift(card))


def _cycle_end(close_month: date, close_day: int) -> date:
    """Last day of the cycle that closes in ``close_month``."""
    if close_day == 1:
        return close_month - timedelta(days=1)
    return clamp_day(close_month.year, close_month.month, close_day - 1)


def statement_period(card: Card, payment_key: str) -> StatementPeriod:
    """
    Inclusive date range billed on the statement paid in ``payment_key``.

    With a close day of 1 the period is the whole calendar month before
    the close month.
    """
    close_day = _check_day(card.cycle_close_day, "cycle_close_day")
    close_month = _close_month(card, payment_key)
    end = _cycle_end(close_month, close_day)
    start = _cycle_end(add_months(close_month, -1), close_day) + timedelta(days=1)
    return StatementPeriod(start=start, end=end, month_str=payment_key)


def find_card_statement(
    statements: Iterable[Statement],
    card_id: str,
    payment_key: str,
) -> Optional[Statement]:
    for statement in statements:
        if statement.card_id == card_id and statement.month_str == payment_key:
            return statement
    return None


def _resolved_end(card: Card, payment_key: str, statement: Optional[Statement]) -> date:
    if statement is not None:
        if statement.custom_close_date is not None:
            return statement.custom_close_date
        if statement.custom_cycle_close_day is not None:
            close_day = _check_day(statement.custom_cycle_close_day, "custom_cycle_close_day")
            return _cycle_end(_close_month(card, payment_key), close_day)
    return statement_period(card, payment_key).end


def resolve_statement_period(
    card: Card,
    payment_key: str,
    statements: Iterable[Statement] = (),
) -> StatementPeriod:
    """
    Statement period honouring per-statement close overrides.

    The statement's own ``custom_close_date`` or ``custom_cycle_close_day``
    moves the end of the period; the previous month's override moves its
    start to the day after that previous close.
    """
    statements = list(statements)
    current = find_card_statement(statements, card.id, payment_key)
    previous_key = month_str(add_months(parse_month(payment_key), -1))
    previous = find_card_statement(statements, card.id, previous_key)

    end = _resolved_end(card, payment_key, current)
    start = _resolved_end(card, previous_key, previous) + timedelta(days=1)
    if start > end:
        start = end
    return StatementPeriod(start=start, end=end, month_str=payment_key)


def settlement_month(day: date, card: Card) -> date:
    """First day of the month the cycle containing ``day`` closes in."""
    close_day = _check_day(card.cycle_close_day, "cycle_close_day")
    month = start_of_month(day)
    return add_months(month, 1) if day.day > close_day else month


def due_date(
    day: date,
    card: Card,
    statements: Iterable[Statement] = (),
) -> date:
    """
    Payment due date for a charge on ``day``.

    A ``custom_due_date`` on the statement for the settlement month wins
    unconditionally. Otherwise the due day is clamped into the payment
    month, which is the settlement month itself when the due day falls
    after the close day and the month after it otherwise.
    """
    settle = settlement_month(day, card)
    statement = find_card_statement(statements, card.id, month_str(settle))
    if statement is not None and statement.custom_due_date is not None:
        return statement.custom_due_date

    due_day = _check_day(card.payment_due_day, "payment_due_day")
    pay_month = settle if due_day > card.cycle_close_day else add_months(settle, 1)
    return clamp_day(pay_month.year, pay_month.month, due_day)


def statement_due_date(
    card: Card,
    payment_key: str,
    statement: Optional[Statement] = None,
) -> date:
    """Due date shown for a statement row of ``payment_key``."""
    if statement is not None and statement.custom_due_date is not None:
        return statement.custom_due_date
    month = parse_month(payment_key)
    return clamp_day(month.year, month.month, _check_day(card.payment_due_day, "payment_due_day"))


def statement_payment_date(
    card: Card,
    payment_key: str,
    statement: Optional[Statement] = None,
) -> date:
    """Date the user intends to pay; defaults to the due date."""
    if statement is not None and statement.custom_payment_date is not None:
        return statement.custom_payment_date
    return statement_due_date(card, payment_key, statement)


def statement_close_date(
    card: Card,
    payment_key: str,
    statement: Optional[Statement] = None,
) -> date:
    """Date the cycle billed in ``payment_key`` closes."""
    return _resolved_end(card, payment_key, statement)


def is_due_within(
    card: Card,
    payment_key: str,
    statement: Optional[Statement],
    today: date,
    days: int,
) -> bool:
    """True when the statement's due date falls in [today, today + days]."""
    due = statement_due_date(card, payment_key, statement)
    return today <= due <= today + timedelta(days=days)
