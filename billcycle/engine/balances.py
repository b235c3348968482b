"""
Balance Projector

Turns stored balance snapshots, transactions and statements into the cash
figures shown on the overview: running balance, projected end-of-month
balance, what is available right now and the card-debt buffer.

DESIGN DECISION: The stored monthly snapshot is the floor. Only
transactions linked to a tracked bank account move the running balance;
a cash or card purchase with no account link never touches it. Card
spending reaches cash only through its statement, so unpaid statements
show up as committed expenses and in the buffer instead.

"Available right now" is the liquid balance alone. Subtracting bills due
in the next few days is a presentation choice left to the caller, who can
use ``bills_due_within`` for it.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from billcycle.engine.classifier import (
    is_covered_elsewhere,
    is_transfer,
    transactions_for_month,
    viewable,
)
from billcycle.engine.cycles import (
    find_card_statement,
    is_due_within,
    payment_month,
)
from billcycle.engine.dates import (
    ZERO,
    end_of_month,
    month_str,
    round_currency,
    start_of_month,
)
from billcycle.models.records import (
    BankAccount,
    BankBalance,
    Card,
    PaymentMethod,
    RecurringType,
    Statement,
    Transaction,
    TransactionType,
)
from billcycle.models.views import BufferSummary, CashFlowSummary, CashPosition


# =============================================================================
# OPENING BALANCE
# =============================================================================

def profile_accounts(profile_id: str, accounts: Iterable[BankAccount]) -> list[BankAccount]:
    return [a for a in accounts if a.profile_id == profile_id]


def stored_balance(
    balances: Iterable[BankBalance],
    profile_id: str,
    month_key: str,
    account_id: Optional[str] = None,
) -> Optional[Decimal]:
    """The snapshot for (profile, month[, account]), or None."""
    for balance in balances:
        if (
            balance.profile_id == profile_id
            and balance.month_str == month_key
            and balance.account_id == account_id
        ):
            return balance.balance
    return None


def opening_balance(
    profile_id: str,
    month_key: str,
    balances: Iterable[BankBalance],
    accounts: Iterable[BankAccount] = (),
    per_account: bool = False,
) -> Decimal:
    """
    Balance at the start of ``month_key``.

    With per-account tracking, each account's stored snapshot (or its
    initial balance when none was stored) is summed. Otherwise the single
    profile snapshot is used, 0 if missing.
    """
    balances = list(balances)
    if not per_account:
        return stored_balance(balances, profile_id, month_key) or ZERO

    total = ZERO
    for account in profile_accounts(profile_id, accounts):
        snapshot = stored_balance(balances, profile_id, month_key, account.id)
        total += snapshot if snapshot is not None else account.initial_balance
    return total


# =============================================================================
# CASH MOVEMENT
# =============================================================================

def _tracked(account_id: Optional[str], account_ids: Optional[set[str]]) -> bool:
    if not account_id:
        return False
    return account_ids is None or account_id in account_ids


def cash_delta(txn: Transaction, account_ids: Optional[set[str]] = None) -> Decimal:
    """
    How much a transaction moves the tracked balance.

    ``account_ids`` limits which accounts count as tracked; None tracks
    every linked account.
    """
    if is_transfer(txn):
        delta = ZERO
        if _tracked(txn.bank_account_id, account_ids):
            delta -= txn.amount + txn.transfer_fee
        if _tracked(txn.to_bank_account_id, account_ids):
            delta += txn.amount
        return delta
    if not _tracked(txn.bank_account_id, account_ids):
        return ZERO
    if txn.type == TransactionType.INCOME:
        return txn.amount
    return -txn.amount


def _account_filter(profile_id: str, accounts: Iterable[BankAccount]) -> Optional[set[str]]:
    ids = {a.id for a in profile_accounts(profile_id, accounts)}
    return ids or None


def _moves_cash(txn: Transaction, profile_id: str) -> bool:
    return txn.profile_id == profile_id and not txn.paid_by_other


def _is_scheduled(txn: Transaction, as_of: date) -> bool:
    """A later-dated recurring record whose schedule already reached ``as_of``."""
    rule = txn.recurring_rule
    if not txn.is_recurring or rule is None:
        return False
    if rule.next_date is not None and rule.next_date <= as_of:
        return True
    return (
        rule.type == RecurringType.INSTALLMENT
        and rule.start_date is not None
        and rule.start_date <= as_of
    )


def _counted_transactions(
    profile_id: str,
    as_of: date,
    transactions: Iterable[Transaction],
) -> list[Transaction]:
    """
    Transactions applied to the running balance on ``as_of``.

    Everything dated from the start of the month through ``as_of``, plus
    later-dated recurring records of the same month that are already
    scheduled, deduped by id and in date order.
    """
    month_start = start_of_month(as_of)
    month_end = end_of_month(as_of)
    counted: dict[str, Transaction] = {}
    for txn in viewable(transactions):
        if not _moves_cash(txn, profile_id):
            continue
        if month_start <= txn.date <= as_of:
            counted[txn.id] = txn
        elif as_of < txn.date <= month_end and _is_scheduled(txn, as_of):
            counted.setdefault(txn.id, txn)
    return sorted(counted.values(), key=lambda t: t.date)


def running_balance(
    profile_id: str,
    as_of: date,
    transactions: Iterable[Transaction],
    balances: Iterable[BankBalance],
    accounts: Iterable[BankAccount] = (),
    per_account: bool = False,
) -> Decimal:
    """Opening balance of the month plus cash moved through ``as_of``."""
    accounts = list(accounts)
    balance = opening_balance(profile_id, month_str(as_of), balances, accounts, per_account)
    account_ids = _account_filter(profile_id, accounts)
    for txn in _counted_transactions(profile_id, as_of, transactions):
        balance += cash_delta(txn, account_ids)
    return round_currency(balance)


current_liquid_balance = running_balance


# =============================================================================
# STATEMENT EXPOSURE
# =============================================================================

def _profile_cards(profile_id: str, cards: Iterable[Card]) -> list[Card]:
    return [c for c in cards if c.profile_id == profile_id]


def unpaid_statement_total(
    cards: Iterable[Card],
    statements: Iterable[Statement],
    month_key: str,
) -> Decimal:
    """
    Full amount of every unpaid statement for ``cards`` in ``month_key``.

    Partial payments do not reduce it; a statement counts until it is paid.
    """
    statements = list(statements)
    total = ZERO
    for card in cards:
        statement = find_card_statement(statements, card.id, month_key)
        if statement is not None and not statement.is_paid:
            total += statement.effective_amount
    return total


def bills_due_within(
    cards: Iterable[Card],
    statements: Iterable[Statement],
    month_key: str,
    today: date,
    days: int = 7,
) -> Decimal:
    """Outstanding amounts of unpaid statements due from ``today`` through ``today + days``."""
    statements = list(statements)
    total = ZERO
    for card in cards:
        statement = find_card_statement(statements, card.id, month_key)
        if statement is None or statement.is_paid:
            continue
        if is_due_within(card, month_key, statement, today, days):
            total += statement.outstanding_amount
    return round_currency(total)


def buffer(
    profile_id: str,
    month_key: str,
    cards: Iterable[Card],
    statements: Iterable[Statement],
    balances: Iterable[BankBalance],
    accounts: Iterable[BankAccount] = (),
    per_account: bool = False,
) -> BufferSummary:
    """Bank balance minus unpaid card statements; negative is the danger zone."""
    bank = opening_balance(profile_id, month_key, balances, accounts, per_account)
    unpaid = unpaid_statement_total(_profile_cards(profile_id, cards), statements, month_key)
    value = round_currency(bank - unpaid)
    return BufferSummary(
        month_str=month_key,
        bank_balance=round_currency(bank),
        unpaid_statements=round_currency(unpaid),
        buffer=value,
        is_danger_zone=value < 0,
    )


# =============================================================================
# PROJECTION
# =============================================================================

def projected_end_of_month(
    profile_id: str,
    as_of: date,
    transactions: Iterable[Transaction],
    balances: Iterable[BankBalance],
    cards: Iterable[Card] = (),
    statements: Iterable[Statement] = (),
    accounts: Iterable[BankAccount] = (),
    per_account: bool = False,
) -> CashPosition:
    """
    Liquid balance on ``as_of`` and where it lands at the end of the month.

    Projected income is every income record still ahead this month.
    Committed expenses are the non-card expenses still ahead plus unpaid
    statements of this month that fall due from ``as_of`` on.
    """
    transactions = list(transactions)
    month_key = month_str(as_of)
    month_end = end_of_month(as_of)

    liquid = running_balance(profile_id, as_of, transactions, balances, accounts, per_account)
    already_counted = {t.id for t in _counted_transactions(profile_id, as_of, transactions)}

    income = expenses = ZERO
    for txn in viewable(transactions):
        if txn.id in already_counted or not _moves_cash(txn, profile_id):
            continue
        if not as_of < txn.date <= month_end:
            continue
        if txn.type == TransactionType.INCOME:
            income += txn.amount
        elif txn.payment_method != PaymentMethod.CARD and not is_transfer(txn):
            expenses += txn.amount

    expenses += bills_due_within(
        _profile_cards(profile_id, cards), statements, month_key, as_of, (month_end - as_of).days
    )

    projected_income = round_currency(income)
    committed = round_currency(expenses)
    return CashPosition(
        as_of=as_of,
        current_liquid_balance=liquid,
        projected_income=projected_income,
        committed_expenses=committed,
        projected_end_of_month_balance=round_currency(liquid + projected_income - committed),
        available_right_now=liquid,
    )


def projected_end_of_month_balance(*args, **kwargs) -> Decimal:
    """Shortcut for ``projected_end_of_month(...).projected_end_of_month_balance``."""
    return projected_end_of_month(*args, **kwargs).projected_end_of_month_balance


def available_right_now(
    profile_id: str,
    as_of: date,
    transactions: Iterable[Transaction],
    balances: Iterable[BankBalance],
    accounts: Iterable[BankAccount] = (),
    per_account: bool = False,
) -> Decimal:
    return running_balance(profile_id, as_of, transactions, balances, accounts, per_account)


# =============================================================================
# CASH FLOW
# =============================================================================

def cash_flow_summary(
    profile_id: str,
    month_key: str,
    transactions: Iterable[Transaction],
    cards: Iterable[Card],
    statements: Iterable[Statement],
) -> CashFlowSummary:
    """
    Income and expenses of a calendar month from a cash perspective.

    Card expenses only count once the statement they bill into is paid;
    a charge on a card that no longer exists is counted anyway. Transfers
    count only their fee.
    """
    cards_by_id = {c.id: c for c in cards}
    statements = list(statements)
    income = expenses = ZERO

    for txn in transactions_for_month(viewable(transactions), month_key):
        if txn.profile_id != profile_id or is_covered_elsewhere(txn, profile_id):
            continue
        if txn.type == TransactionType.INCOME:
            income += txn.amount
            continue
        if is_transfer(txn):
            expenses += txn.transfer_fee
            continue
        if txn.payment_method == PaymentMethod.CARD and txn.card_id:
            card = cards_by_id.get(txn.card_id)
            if card is not None:
                statement = find_card_statement(
                    statements, card.id, payment_month(txn.date, card)
                )
                if statement is None or not statement.is_paid:
                    continue
        expenses += txn.amount

    return CashFlowSummary(
        month_str=month_key,
        income=round_currency(income),
        expenses=round_currency(expenses),
    )
