"""Tests for the dashboard aggregation."""

import pytest

from itemmaster.dashboard import (
    category_breakdown,
    category_summary,
    format_value,
    item_value,
    percentage,
    subcategory_breakdown,
    subcategory_summary,
    total_value,
)
from itemmaster.models import Category, Currency, DisplaySettings, Item, Metric, Subcategory

USD = DisplaySettings(Currency.USD, 7.0)
CNY = DisplaySettings(Currency.CNY, 7.0)


@pytest.fixture
def categories():
    food = Category(name="食物", sort_order=0, id="food")
    food.subcategories = [
        Subcategory(name="零食", category_id="food", sort_order=0, id="snacks"),
        Subcategory(name="蔬菜", category_id="food", sort_order=1, id="veg"),
    ]
    daily = Category(name="日用品", sort_order=1, id="daily")
    clothes = Category(name="服饰", sort_order=2, id="clothes")
    return [food, daily, clothes]


@pytest.fixture
def inventory():
    return [
        Item(category_id="food", subcategory_id="snacks", name="薯片",
             quantity=2, unit_price=7.0, original_currency="CNY"),
        Item(category_id="food", name="鸡蛋", quantity=12, unit_price=0.5),
        Item(category_id="food", subcategory_id="veg", name="白菜", quantity=1),
        Item(category_id="daily", name="纸巾", quantity=3, unit_price=2.0),
    ]


class TestItemValue:
    def test_count_is_quantity(self, inventory):
        assert item_value(inventory[0], Metric.COUNT, USD) == 2

    def test_value_converts_to_display_currency(self, inventory):
        assert item_value(inventory[0], Metric.VALUE, USD) == pytest.approx(2.0)
        assert item_value(inventory[1], Metric.VALUE, CNY) == pytest.approx(42.0)

    def test_missing_price_is_zero(self, inventory):
        assert item_value(inventory[2], Metric.VALUE, USD) == 0.0


class TestCategoryBreakdown:
    def test_count_sorted_descending(self, inventory, categories):
        stats = category_breakdown(inventory, categories, Metric.COUNT, USD)
        assert [(s.category.name, s.value) for s in stats] == [("食物", 15), ("日用品", 3)]

    def test_empty_categories_omitted(self, inventory, categories):
        names = [s.category.name for s in category_breakdown(inventory, categories)]
        assert "服饰" not in names

    @pytest.mark.parametrize("metric", list(Metric))
    @pytest.mark.parametrize("settings", [USD, CNY])
    def test_sum_equals_item_sum(self, inventory, categories, metric, settings):
        stats = category_breakdown(inventory, categories, metric, settings)
        expected = sum(item_value(i, metric, settings) for i in inventory)
        assert total_value(stats) == pytest.approx(expected)

    def test_percentages_add_up(self, inventory, categories):
        stats = category_breakdown(inventory, categories, Metric.VALUE, USD)
        total = total_value(stats)
        shares = [float(percentage(s.value, total).rstrip("%")) for s in stats]
        assert sum(shares) == pytest.approx(100.0, abs=0.2)

    def test_summary_lists_every_category_in_order(self, inventory, categories):
        stats = category_summary(inventory, categories, Metric.COUNT, USD)
        assert [(s.category.name, s.value) for s in stats] == [
            ("食物", 15), ("日用品", 3), ("服饰", 0.0),
        ]


class TestSubcategoryBreakdown:
    def test_uncategorized_bucket(self, inventory, categories):
        stats = subcategory_breakdown(inventory, categories[0], Metric.COUNT, USD)
        assert [(s.name, s.value) for s in stats] == [
            ("食物(未分类)", 12), ("零食", 2), ("蔬菜", 1),
        ]
        assert stats[0].is_uncategorized

    def test_sum_equals_category_value(self, inventory, categories):
        food = categories[0]
        stats = subcategory_breakdown(inventory, food, Metric.VALUE, CNY)
        level1 = category_breakdown(inventory, categories, Metric.VALUE, CNY)
        food_total = next(s.value for s in level1 if s.category.id == "food")
        assert total_value(stats) == pytest.approx(food_total)

    def test_summary_places_uncategorized(self, inventory, categories):
        food = categories[0]
        food.uncategorized_sort_order = 1
        rows = subcategory_summary(inventory, food, Metric.COUNT, USD)
        assert [r.name for r in rows] == ["零食", "食物(未分类)", "蔬菜"]

    def test_summary_without_uncategorized_items(self, categories):
        items = [Item(category_id="food", subcategory_id="veg", name="白菜")]
        rows = subcategory_summary(items, categories[0], Metric.COUNT, USD)
        assert [r.name for r in rows] == ["零食", "蔬菜"]


class TestFormatting:
    def test_percentage(self):
        assert percentage(1, 3) == "33.3%"
        assert percentage(5, 0) == "0.0%"

    def test_format_count(self):
        assert format_value(2.5, Metric.COUNT, USD) == "2.5"

    def test_format_value(self):
        assert format_value(12.346, Metric.VALUE, CNY) == "¥12.35"
