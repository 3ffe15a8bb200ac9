"""Spending category resolution and the default category set.

``CategoryResolver`` maps a parsed transaction to a category by scanning an
ordered keyword table for its direction; the first category whose keywords
appear in the counterparty or the body wins. Category ids are looked up
through a ``CategoryCache`` owned by the resolver: it loads the name -> id map
on first use and stays valid until ``invalidate()`` or ``refresh()`` is
called (e.g. after the user edits categories).

``seed_default_categories`` installs the default set idempotently.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import CategoryRef, Direction
from .rules import Rule, first_match, keyword_table
from .stores import CategoryStore

logger = get_logger("sms_ledger.categories")

OTHER = "Other"
OTHER_INCOME = "Other Income"

EXPENSE_CATEGORY_RULES: tuple[Rule[str], ...] = keyword_table(
    [
        ("Food & Dining", ["zomato", "swiggy", "ubereats", "dominos", "pizza", "restaurant",
                           "food", "cafe", "starbucks", "kfc", "mcdonald", "burger"]),
        ("Groceries", ["grocery", "supermarket", "vegetables", "fruits", "milk", "bigbasket",
                       "grofers", "blinkit", "dunzo", "zepto", "instamart"]),
        ("Transportation", ["ola", "uber", "taxi", "fuel", "petrol", "diesel", "metro", "bus",
                            "auto", "rickshaw", "rapido"]),
        ("Shopping", ["amazon", "flipkart", "myntra", "ajio", "shopping", "mall", "store",
                      "electronics", "fashion"]),
        ("Bills & Utilities", ["bill", "recharge", "electricity", "gas", "water", "broadband",
                               "internet", "mobile", "jio", "airtel", "vi"]),
        ("Entertainment", ["netflix", "amazon prime", "hotstar", "spotify", "movie", "cinema",
                           "ticket", "booking"]),
        ("Healthcare", ["hospital", "clinic", "doctor", "medical", "pharmacy", "medicine",
                        "health", "apollo", "1mg", "pharmeasy"]),
        ("Education", ["school", "college", "university", "education", "course", "tuition",
                       "fees", "book"]),
        ("Travel", ["flight", "hotel", "travel", "trip", "irctc", "train", "makemytrip",
                    "goibibo"]),
        ("Personal Care", ["salon", "spa", "beauty", "cosmetic", "hair", "personal care",
                           "grooming"]),
    ]
)  # fmt: skip

INCOME_CATEGORY_RULES: tuple[Rule[str], ...] = keyword_table(
    [
        ("Salary", ["salary", "wage", "pay", "employer", "payroll", "bonus"]),
        (OTHER_INCOME, ["interest", "dividend", "return", "cashback", "reward", "refund",
                        "credit", "commission", "freelance"]),
    ]
)  # fmt: skip

_RULES_BY_DIRECTION: dict[Direction, tuple[Rule[str], ...]] = {
    Direction.EXPENSE: EXPENSE_CATEGORY_RULES,
    Direction.INCOME: INCOME_CATEGORY_RULES,
}
FALLBACK_BY_DIRECTION: dict[Direction, str] = {
    Direction.EXPENSE: OTHER,
    Direction.INCOME: OTHER_INCOME,
}


@dataclass(frozen=True, slots=True)
class DefaultCategory:
    name: str
    direction: Direction
    icon_name: str
    color_hex: str


DEFAULT_CATEGORIES: tuple[DefaultCategory, ...] = (
    DefaultCategory("Food & Dining", Direction.EXPENSE, "restaurant", "#FF6B6B"),
    DefaultCategory("Transportation", Direction.EXPENSE, "directions_car", "#4ECDC4"),
    DefaultCategory("Shopping", Direction.EXPENSE, "shopping_bag", "#45B7D1"),
    DefaultCategory("Bills & Utilities", Direction.EXPENSE, "receipt", "#FFA07A"),
    DefaultCategory("Entertainment", Direction.EXPENSE, "movie", "#98D8C8"),
    DefaultCategory("Healthcare", Direction.EXPENSE, "local_hospital", "#F7DC6F"),
    DefaultCategory("Education", Direction.EXPENSE, "school", "#BB8FCE"),
    DefaultCategory("Travel", Direction.EXPENSE, "flight", "#85C1E9"),
    DefaultCategory("Personal Care", Direction.EXPENSE, "face", "#F8C471"),
    DefaultCategory("Groceries", Direction.EXPENSE, "local_grocery_store", "#82E0AA"),
    DefaultCategory("Salary", Direction.INCOME, "work", "#28B463"),
    DefaultCategory(OTHER_INCOME, Direction.INCOME, "attach_money", "#58D68D"),
    DefaultCategory(OTHER, Direction.EXPENSE, "more_horiz", "#BDC3C7"),
)


def seed_default_categories(session: Session, store: CategoryStore | None = None) -> int:
    """Insert each default category whose name is not taken; return how many were added."""

    store = store or CategoryStore()
    added = 0
    for default in DEFAULT_CATEGORIES:
        existing = store.get_by_name(session, default.name)
        if existing is not None:
            if existing.direction is not default.direction:
                logger.warning(
                    "category %r exists as %s; default is %s",
                    default.name,
                    existing.direction.value,
                    default.direction.value,
                )
            continue
        store.insert(
            session,
            name=default.name,
            direction=default.direction,
            icon_name=default.icon_name,
            color_hex=default.color_hex,
        )
        added += 1
    if added:
        logger.info("seeded %d default categories", added)
    return added


class CategoryCache:
    """Name -> ``CategoryRef`` map loaded on first use.

    Concurrent first use may load twice; the last load wins and both are
    equivalent.
    """

    def __init__(self) -> None:
        self._by_name: dict[str, CategoryRef] | None = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._by_name is not None

    def get_or_load(self, loader: Callable[[], Iterable[CategoryRef]]) -> dict[str, CategoryRef]:
        current = self._by_name
        if current is None:
            current = self.refresh(loader)
        return current

    def refresh(self, loader: Callable[[], Iterable[CategoryRef]]) -> dict[str, CategoryRef]:
        loaded = {c.name: c for c in loader()}
        with self._lock:
            self._by_name = loaded
        return loaded

    def invalidate(self) -> None:
        with self._lock:
            self._by_name = None


class CategoryResolver:
    def __init__(self, store: CategoryStore | None = None, cache: CategoryCache | None = None) -> None:
        self.store = store or CategoryStore()
        self.cache = cache or CategoryCache()

    def category_name_for(self, counterparty: str, body: str, direction: Direction) -> str:
        """Keyword-table category name for the inputs, or the direction's fallback."""

        subject = f"{counterparty}\n{body}".lower()
        fallback = FALLBACK_BY_DIRECTION[direction]
        return first_match(_RULES_BY_DIRECTION[direction], subject, fallback)

    def resolve(
        self, session: Session, counterparty: str, body: str, direction: Direction
    ) -> CategoryRef | None:
        by_name = self.cache.get_or_load(lambda: self.store.list_all(session))
        fallback = FALLBACK_BY_DIRECTION[direction]
        name = self.category_name_for(counterparty, body, direction)

        for candidate in (name, fallback):
            ref = by_name.get(candidate)
            if ref is not None and ref.direction is direction:
                return ref
        logger.debug("no %s category available for %r", direction.value, name)
        return None


__all__ = [
    "CategoryCache",
    "CategoryResolver",
    "DEFAULT_CATEGORIES",
    "DefaultCategory",
    "EXPENSE_CATEGORY_RULES",
    "FALLBACK_BY_DIRECTION",
    "INCOME_CATEGORY_RULES",
    "OTHER",
    "OTHER_INCOME",
    "seed_default_categories",
]
