"""
Category Registry

Default categories, label lookups with safe fallbacks, and guarded
deletion.

DESIGN DECISION: Referential misses never break a view. A transaction or
allocation pointing at a deleted category or card renders as
"Unknown Category" / "Unknown Card" and its money is still counted.
"""

from typing import Iterable, Optional

from billcycle.engine.errors import ProtectedCategoryError
from billcycle.models.records import Card, Category, CategoryType, TransactionType

UNKNOWN_CATEGORY = "Unknown Category"
UNKNOWN_CARD = "Unknown Card"


def _default(id: str, name: str, icon: str, color: str, type: CategoryType) -> Category:
    return Category(id=id, name=name, icon=icon, color=color, type=type)


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    # Expense
    _default("housing", "Housing", "🏠", "#3b82f6", CategoryType.EXPENSE),
    _default("transportation", "Transportation", "🚗", "#8b5cf6", CategoryType.EXPENSE),
    _default("food-dining", "Food & Dining", "🍴", "#f59e0b", CategoryType.EXPENSE),
    _default("groceries", "Groceries", "🛒", "#10b981", CategoryType.EXPENSE),
    _default("shopping", "Shopping", "🛍️", "#ec4899", CategoryType.EXPENSE),
    _default("entertainment", "Entertainment", "📺", "#6366f1", CategoryType.EXPENSE),
    _default("healthcare", "Healthcare", "❤️", "#ef4444", CategoryType.EXPENSE),
    _default("utilities", "Utilities", "⚡", "#eab308", CategoryType.EXPENSE),
    _default("insurance", "Insurance", "🛡️", "#06b6d4", CategoryType.EXPENSE),
    _default("education", "Education", "📚", "#14b8a6", CategoryType.EXPENSE),
    _default("personal", "Personal Care", "👤", "#a855f7", CategoryType.EXPENSE),
    _default("subscriptions", "Subscriptions", "💳", "#f97316", CategoryType.EXPENSE),
    _default("travel", "Travel", "✈️", "#0ea5e9", CategoryType.EXPENSE),
    _default("gifts", "Gifts & Donations", "🎁", "#f43f5e", CategoryType.EXPENSE),
    # Income
    _default("salary", "Salary", "💰", "#22c55e", CategoryType.INCOME),
    _default("business", "Business Income", "💼", "#3b82f6", CategoryType.INCOME),
    _default("investments", "Investments", "📈", "#10b981", CategoryType.INCOME),
    _default("freelance", "Freelance", "💻", "#8b5cf6", CategoryType.INCOME),
    _default("other-income", "Other Income", "➕", "#06b6d4", CategoryType.INCOME),
    # Fallback
    _default("uncategorized", "Uncategorized", "❓", "#6b7280", CategoryType.BOTH),
)

DEFAULT_CATEGORY_IDS = frozenset(c.id for c in DEFAULT_CATEGORIES)


def default_categories() -> list[Category]:
    """Fresh copies of the default categories for seeding a new store."""
    return [c.model_copy() for c in DEFAULT_CATEGORIES]


def is_protected(category_id: str) -> bool:
    return category_id in DEFAULT_CATEGORY_IDS


def find_category(categories: Iterable[Category], category_id: str) -> Optional[Category]:
    for category in categories:
        if category.id == category_id:
            return category
    return None


def categories_for_type(
    categories: Iterable[Category],
    txn_type: TransactionType,
) -> list[Category]:
    """Categories usable for a transaction type ("both" always included)."""
    return [
        c for c in categories
        if c.type == CategoryType.BOTH or c.type.value == txn_type.value
    ]


def delete_category(categories: Iterable[Category], category_id: str) -> list[Category]:
    """
    Remove a custom category.

    Returns the remaining categories. Deleting an unknown id is a no-op.

    Raises:
        ProtectedCategoryError: If ``category_id`` is a default category
    """
    if is_protected(category_id):
        raise ProtectedCategoryError(f"Cannot delete default category '{category_id}'")
    return [c for c in categories if c.id != category_id]


def category_label(categories: Iterable[Category], category_id: Optional[str]) -> str:
    if not category_id:
        return UNKNOWN_CATEGORY
    category = find_category(categories, category_id)
    return category.name if category is not None else UNKNOWN_CATEGORY


def card_label(cards: Iterable[Card], card_id: Optional[str]) -> str:
    for card in cards:
        if card.id == card_id:
            name = " ".join(part for part in (card.bank_name, card.card_name) if part)
            return name or UNKNOWN_CARD
    return UNKNOWN_CARD
