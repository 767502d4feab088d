"""Sorting, scoping and free-text search over item lists."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from functools import cmp_to_key

from .models import Category, Item, SortKey


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def compare_items(a: Item, b: Item, key: SortKey, ascending: bool = True) -> int:
    """Three-way comparison used by :func:`sort_items`.

    For ``EXPIRY_DATE``, items with a date always come before items
    without one and two undated items fall back to newest-created first;
    neither rule is affected by ``ascending``.
    """
    if key is SortKey.EXPIRY_DATE:
        if a.expiry_date is not None and b.expiry_date is not None:
            result = _cmp(a.expiry_date, b.expiry_date)
        elif a.expiry_date is not None:
            return -1
        elif b.expiry_date is not None:
            return 1
        else:
            return _cmp(b.created_at, a.created_at)
    elif key is SortKey.UNIT_PRICE:
        result = _cmp(a.unit_price or 0.0, b.unit_price or 0.0)
    elif key is SortKey.ACQUIRED_DATE:
        result = _cmp(a.acquired_date or date.min, b.acquired_date or date.min)
    elif key is SortKey.QUANTITY:
        result = _cmp(a.quantity, b.quantity)
    else:
        raise ValueError(f"unknown sort key: {key!r}")

    return result if ascending else -result


def sort_items(
    items: Iterable[Item],
    key: SortKey | str = SortKey.EXPIRY_DATE,
    ascending: bool = True,
) -> list[Item]:
    """Return a new list ordered by ``key``. Ties keep their input order."""
    key = SortKey(key)
    return sorted(
        items, key=cmp_to_key(lambda a, b: compare_items(a, b, key, ascending))
    )


def filter_items(
    items: Iterable[Item],
    *,
    category_id: str | None = None,
    subcategory_id: str | None = None,
    uncategorized: bool = False,
) -> list[Item]:
    """Scope a list to a category, a subcategory, or a category's uncategorized items."""
    result = []
    for item in items:
        if category_id is not None and item.category_id != category_id:
            continue
        if subcategory_id is not None and item.subcategory_id != subcategory_id:
            continue
        if uncategorized and item.subcategory_id is not None:
            continue
        result.append(item)
    return result


def search_items(
    items: Iterable[Item], query: str, categories: Iterable[Category] = ()
) -> list[Item]:
    """Case-insensitive substring search.

    An item matches if the query occurs in its name, any tag name, its
    category name or its subcategory name. A blank query matches nothing.
    """
    needle = query.strip().casefold()
    if not needle:
        return []

    category_names: dict[str, str] = {}
    subcategory_names: dict[str, str] = {}
    for category in categories:
        category_names[category.id] = category.name.casefold()
        for sub in category.subcategories:
            subcategory_names[sub.id] = sub.name.casefold()

    def matches(item: Item) -> bool:
        if needle in item.name.casefold():
            return True
        if any(needle in tag.name.casefold() for tag in item.tags):
            return True
        if needle in category_names.get(item.category_id, ""):
            return True
        if item.subcategory_id is not None:
            return needle in subcategory_names.get(item.subcategory_id, "")
        return False

    return [item for item in items if matches(item)]
