"""
Term Tracker

Computes how far multi-month obligations have progressed, and builds the
records of a new installment plan.

DESIGN DECISION: The current term is derived from the start date on every
read (calendar months since the start month, plus one) instead of being
incremented by a scheduler. Nothing has to run on the first of the month
for the numbers to be right. Users can opt out per rule with
``term_entry_mode=manual``.

Term math never raises into a view: an unparsable start date yields term 1.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

import structlog
from dateutil.relativedelta import relativedelta

from billcycle.engine.dates import (
    ZERO,
    add_months,
    month_difference,
    parse_day,
    round_currency,
    round_half_up,
    to_decimal,
)
from billcycle.models.records import (
    Frequency,
    PaymentMethod,
    RecurringRule,
    RecurringType,
    TermEntryMode,
    Transaction,
    TransactionType,
    new_id,
)
from billcycle.models.views import InstallmentProgress, InstallmentStatus

logger = structlog.get_logger(__name__)


def current_term(start, as_of: date) -> int:
    """
    1-based term number on ``as_of`` for an obligation starting at ``start``.

    Floored at 1, so an installment that has not started yet reports term 1.
    """
    start_day = parse_day(start)
    if start_day is None:
        logger.warning("term_start_unparsable", start=str(start))
        return 1
    return max(1, month_difference(start_day, as_of) + 1)


def progress_percentage(current: int, total: int) -> int:
    """Whole-number completion percentage clamped to [0, 100]."""
    if not total or total <= 0:
        return 0
    return max(0, min(100, round_half_up(Decimal(current) / Decimal(total) * 100)))


def is_completed(current: int, total: int) -> bool:
    return current >= total


def installment_status(
    start,
    total_terms: int,
    as_of: date,
    monthly_amount: Decimal = ZERO,
) -> InstallmentStatus:
    """
    Unfloored term position of an installment.

    Before the start month the term is zero or negative and the
    installment is upcoming; after the last term it is finished.
    """
    start_day = parse_day(start)
    term = month_difference(start_day, as_of) + 1 if start_day is not None else 1
    return InstallmentStatus(
        current_term=term,
        total_terms=total_terms,
        monthly_amount=to_decimal(monthly_amount),
        is_active=1 <= term <= total_terms,
        is_finished=term > total_terms,
        is_upcoming=term < 1,
    )


def refresh_rule(rule: RecurringRule, as_of: date) -> RecurringRule:
    """Return the rule with its current term recomputed from the start date."""
    if rule.type != RecurringType.INSTALLMENT:
        return rule
    if rule.term_entry_mode == TermEntryMode.MANUAL or rule.start_date is None:
        return rule
    return rule.model_copy(update={"current_term": current_term(rule.start_date, as_of)})


def monthly_amortization(principal, total_terms: int) -> Decimal:
    """Equal monthly share of ``principal`` rounded to cents."""
    if total_terms < 1:
        raise ValueError("total_terms must be at least 1")
    return round_currency(to_decimal(principal) / total_terms)


def installment_end_date(start: date, total_terms: int) -> date:
    """Date of the final term."""
    return add_months(start, max(total_terms, 1) - 1)


_FREQUENCY_STEPS = {
    Frequency.WEEKLY: relativedelta(days=7),
    Frequency.BIWEEKLY: relativedelta(days=14),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.YEARLY: relativedelta(years=1),
}


def next_occurrence(rule: RecurringRule, as_of: date) -> Optional[date]:
    """
    First occurrence on or after ``as_of``.

    Steps are taken from the anchor date (``next_date``, else
    ``start_date``) as multiples, so a rule anchored on the 31st keeps
    returning to the 31st after short months.
    """
    anchor = rule.next_date or rule.start_date
    if anchor is None:
        return None
    step = _FREQUENCY_STEPS[rule.frequency]
    occurrence = anchor
    count = 0
    while occurrence < as_of:
        count += 1
        occurrence = anchor + step * count
    if rule.end_date is not None and occurrence > rule.end_date:
        return None
    return occurrence


def build_installment_plan(
    profile_id: str,
    description: str,
    total_principal,
    total_terms: int,
    start_date: date,
    category_id: str = "uncategorized",
    payment_method: PaymentMethod = PaymentMethod.CARD,
    card_id: Optional[str] = None,
    bank_account_id: Optional[str] = None,
    interest_rate: Optional[Decimal] = None,
) -> list[Transaction]:
    """
    Build a parent installment record and one virtual record per term.

    The parent holds the total principal and is excluded from budgets.
    Each child carries one month's share; the last term absorbs the
    rounding remainder so the children always sum to the principal.

    Returns:
        ``[parent, term_1, ..., term_n]``
    """
    if total_terms < 1:
        raise ValueError("total_terms must be at least 1")

    principal = round_currency(total_principal)
    group_id = new_id()
    end_date = installment_end_date(start_date, total_terms)

    principal_cents = int(principal * 100)
    base_cents = principal_cents // total_terms
    remainder_cents = principal_cents % total_terms

    parent = Transaction(
        profile_id=profile_id,
        type=TransactionType.EXPENSE,
        amount=principal,
        date=start_date,
        category_id=category_id,
        description=description,
        payment_method=payment_method,
        card_id=card_id,
        bank_account_id=bank_account_id,
        is_recurring=True,
        is_budget_impacting=False,
        recurring_rule=RecurringRule(
            type=RecurringType.INSTALLMENT,
            frequency=Frequency.MONTHLY,
            total_principal=principal,
            current_term=1,
            total_terms=total_terms,
            start_date=start_date,
            end_date=end_date,
            interest_rate=interest_rate,
            installment_group_id=group_id,
        ),
    )

    plan = [parent]
    for index in range(total_terms):
        cents = base_cents + (remainder_cents if index == total_terms - 1 else 0)
        plan.append(Transaction(
            profile_id=profile_id,
            type=TransactionType.EXPENSE,
            amount=Decimal(cents) / 100,
            date=add_months(start_date, index),
            category_id=category_id,
            description=f"{description} ({index + 1}/{total_terms})",
            payment_method=payment_method,
            card_id=card_id,
            bank_account_id=bank_account_id,
            is_recurring=True,
            is_virtual=True,
            parent_transaction_id=parent.id,
            recurring_rule=RecurringRule(
                type=RecurringType.INSTALLMENT,
                frequency=Frequency.MONTHLY,
                total_principal=principal,
                current_term=index + 1,
                total_terms=total_terms,
                start_date=start_date,
                end_date=end_date,
                interest_rate=interest_rate,
                installment_group_id=group_id,
                term_entry_mode=TermEntryMode.MANUAL,
            ),
        ))

    logger.info(
        "installment_plan_built",
        group_id=group_id,
        total_terms=total_terms,
        principal=str(principal),
    )
    return plan


def _group_key(txn: Transaction) -> str:
    rule = txn.recurring_rule
    if rule is not None and rule.installment_group_id:
        return rule.installment_group_id
    return txn.parent_transaction_id or txn.id


def installment_progress(
    transactions: Iterable[Transaction],
    as_of: date,
) -> list[InstallmentProgress]:
    """
    Progress of every installment group on ``as_of``.

    A group is the parent plus its virtual terms when the plan was built
    with ``build_installment_plan``, or a single legacy record whose amount
    is the monthly payment.
    """
    groups: dict[str, list[Transaction]] = defaultdict(list)
    for txn in transactions:
        rule = txn.recurring_rule
        if txn.is_recurring and rule is not None and rule.type == RecurringType.INSTALLMENT:
            groups[_group_key(txn)].append(txn)

    progress = []
    for group_id, members in groups.items():
        members.sort(key=lambda t: t.date)
        parents = [t for t in members if not t.is_virtual and not t.parent_transaction_id
                   and not t.is_budget_impacting]
        parent_ids = {t.id for t in parents}
        terms = [t for t in members if t.id not in parent_ids]
        lead = parents[0] if parents else members[0]
        rule = lead.recurring_rule

        total_terms = rule.total_terms or len(terms) or 1
        monthly = terms[0].amount if terms else lead.amount
        if parents and not terms:
            monthly = monthly_amortization(lead.amount, total_terms)
        principal = rule.total_principal
        if principal is None:
            principal = lead.amount if parents else monthly * total_terms

        start = rule.start_date or lead.date
        manual = rule.term_entry_mode == TermEntryMode.MANUAL and rule.current_term
        if manual and (parents or len(members) == 1):
            term = rule.current_term
        else:
            term = current_term(start, as_of)

        billed_terms = min(term, total_terms)
        progress.append(InstallmentProgress(
            group_id=group_id,
            description=lead.description,
            card_id=lead.card_id,
            monthly_amount=round_currency(monthly),
            total_principal=round_currency(principal),
            current_term=term,
            total_terms=total_terms,
            progress_percentage=progress_percentage(term, total_terms),
            is_completed=is_completed(term, total_terms),
            remaining_balance=max(ZERO, round_currency(principal - monthly * billed_terms)),
            start_date=start,
            end_date=rule.end_date or installment_end_date(start, total_terms),
        ))
    return progress
