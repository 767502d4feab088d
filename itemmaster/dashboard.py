"""Dashboard statistics: item count or value grouped by category.

Everything is recomputed from the item list on each call. Values use the
live exchange rate from :class:`DisplaySettings`, not the cached
``normalized_price``, so a rate change is reflected immediately.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .currency import convert, format_amount
from .models import Category, DisplaySettings, Item, Metric, Subcategory
from .units import format_quantity


@dataclass
class CategoryStat:
    category: Category
    value: float


@dataclass
class SubcategoryStat:
    subcategory: Subcategory | None  # None is the "(未分类)" bucket
    name: str
    value: float

    @property
    def is_uncategorized(self) -> bool:
        return self.subcategory is None


def item_value(item: Item, metric: Metric, settings: DisplaySettings) -> float:
    """Contribution of one item: its quantity, or its price × quantity."""
    if metric is Metric.COUNT:
        return item.quantity
    price = convert(
        item.unit_price, item.original_currency, settings.currency, settings.exchange_rate
    )
    return price * item.quantity


def category_breakdown(
    items: Iterable[Item],
    categories: Iterable[Category],
    metric: Metric = Metric.COUNT,
    settings: DisplaySettings | None = None,
) -> list[CategoryStat]:
    """One entry per category that has items, largest value first."""
    settings = settings or DisplaySettings()
    by_id = {c.id: c for c in categories}
    totals: dict[str, float] = {}
    for item in items:
        totals[item.category_id] = totals.get(item.category_id, 0.0) + item_value(
            item, metric, settings
        )

    stats = [
        CategoryStat(
            category=by_id.get(cid) or Category(name=cid, id=cid),
            value=value,
        )
        for cid, value in totals.items()
    ]
    stats.sort(key=lambda s: (-s.value, s.category.sort_order))
    return stats


def category_summary(
    items: Iterable[Item],
    categories: Iterable[Category],
    metric: Metric = Metric.COUNT,
    settings: DisplaySettings | None = None,
) -> list[CategoryStat]:
    """Every category in display order with its value (0 when empty)."""
    categories = list(categories)
    values = {
        s.category.id: s.value
        for s in category_breakdown(items, categories, metric, settings)
    }
    ordered = sorted(categories, key=lambda c: c.sort_order)
    return [CategoryStat(category=c, value=values.get(c.id, 0.0)) for c in ordered]


def subcategory_breakdown(
    items: Iterable[Item],
    category: Category,
    metric: Metric = Metric.COUNT,
    settings: DisplaySettings | None = None,
) -> list[SubcategoryStat]:
    """Drill-down for one category, largest value first.

    Items without a subcategory are grouped under ``"<category>(未分类)"``.
    """
    settings = settings or DisplaySettings()
    subs = {s.id: s for s in category.subcategories}
    totals: dict[str | None, float] = {}
    for item in items:
        if item.category_id != category.id:
            continue
        key = item.subcategory_id if item.subcategory_id in subs else None
        totals[key] = totals.get(key, 0.0) + item_value(item, metric, settings)

    stats = []
    for key, value in totals.items():
        sub = subs.get(key) if key is not None else None
        name = sub.name if sub is not None else category.uncategorized_label
        stats.append(SubcategoryStat(subcategory=sub, name=name, value=value))
    stats.sort(key=lambda s: -s.value)
    return stats


def subcategory_summary(
    items: Iterable[Item],
    category: Category,
    metric: Metric = Metric.COUNT,
    settings: DisplaySettings | None = None,
) -> list[SubcategoryStat]:
    """Subcategories in display order.

    The "(未分类)" row is present only when such items exist and is placed at
    ``category.uncategorized_sort_order``.
    """
    stats = subcategory_breakdown(items, category, metric, settings)
    values = {s.subcategory.id: s.value for s in stats if s.subcategory is not None}
    rows = [
        SubcategoryStat(subcategory=sub, name=sub.name, value=values.get(sub.id, 0.0))
        for sub in sorted(category.subcategories, key=lambda s: s.sort_order)
    ]
    uncategorized = next((s for s in stats if s.is_uncategorized), None)
    if uncategorized is not None:
        position = max(0, min(category.uncategorized_sort_order, len(rows)))
        rows.insert(position, uncategorized)
    return rows


def total_value(stats: Iterable[CategoryStat | SubcategoryStat]) -> float:
    return sum(s.value for s in stats)


def percentage(value: float, total: float) -> str:
    """Share of ``total`` with one decimal, e.g. ``"42.5%"``; 0 total gives ``"0.0%"``."""
    if total == 0:
        return "0.0%"
    return f"{value / total * 100:.1f}%"


def format_value(value: float, metric: Metric, settings: DisplaySettings | None = None) -> str:
    settings = settings or DisplaySettings()
    if metric is Metric.COUNT:
        return format_quantity(value)
    return format_amount(value, settings.currency)
