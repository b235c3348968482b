"""
Shared fixtures for billcycle tests.

Test strategy:
1. Unit tests for each engine component over plain record lists
2. Workflow tests for the workspace over the in-memory store
3. No I/O beyond the in-memory store
"""

from datetime import date
from decimal import Decimal

import pytest

from billcycle.config import get_settings
from billcycle.models.records import (
    BankAccount,
    BankBalance,
    Card,
    PaymentMethod,
    Transaction,
    TransactionType,
)

PROFILE = "profile-1"


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Keep environment overrides from leaking between tests."""
    for name in ("BILLCYCLE_PER_ACCOUNT_TRACKING", "BILLCYCLE_DUE_SOON_DAYS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def profile_id() -> str:
    return PROFILE


@pytest.fixture
def card() -> Card:
    """Closes on the 20th, due on the 12th of the month after closing."""
    return Card(
        id="card-1",
        profile_id=PROFILE,
        bank_name="Metro Bank",
        card_name="Rewards",
        cycle_close_day=20,
        payment_due_day=12,
    )


@pytest.fixture
def same_month_card() -> Card:
    """Closes on the 9th, due on the 27th of the closing month."""
    return Card(
        id="card-2",
        profile_id=PROFILE,
        bank_name="City Credit",
        card_name="Classic",
        cycle_close_day=9,
        payment_due_day=27,
    )


@pytest.fixture
def account() -> BankAccount:
    return BankAccount(id="acct-1", profile_id=PROFILE, name="Checking", initial_balance=Decimal("1000"))


@pytest.fixture
def snapshot() -> BankBalance:
    return BankBalance(profile_id=PROFILE, month_str="2025-03", balance=Decimal("5000"))


def make_txn(
    amount,
    day: date,
    type: TransactionType = TransactionType.EXPENSE,
    **fields,
) -> Transaction:
    """Build a transaction for PROFILE with sensible defaults."""
    fields.setdefault("profile_id", PROFILE)
    return Transaction(type=type, amount=Decimal(str(amount)), date=day, **fields)


def card_charge(amount, day: date, card_id: str = "card-1", **fields) -> Transaction:
    return make_txn(amount, day, payment_method=PaymentMethod.CARD, card_id=card_id, **fields)
