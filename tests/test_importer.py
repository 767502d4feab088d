"""Tests for turning scanned receipts into saved items."""

from datetime import date

import pytest

from itemmaster.models import Category, Currency, ParsedReceipt, SourceType
from itemmaster.receipt.importer import (
    ImportDraft,
    build_drafts,
    commit_drafts,
    parse_receipt_date,
)


@pytest.fixture
def categories(taxonomy, food):
    return taxonomy.list_categories()


class TestParseReceiptDate:
    def test_valid(self):
        assert parse_receipt_date("2025-03-01") == date(2025, 3, 1)

    @pytest.mark.parametrize("text", [None, "", "2025/03/01", "03-01-2025", "2025-13-01", "昨天"])
    def test_invalid(self, text):
        assert parse_receipt_date(text) is None


class TestImportDraft:
    def test_from_parsed(self, categories):
        raw = ParsedReceipt(
            name="薯片",
            unit_price_string="6.5",
            quantity=3,
            matched_category_name="食物",
            matched_subcategory_name="零食",
            tag_names=["Temu"],
            notes="大包装",
            acquired_date_string="2025-03-01",
            brand="乐事",
        )
        draft = ImportDraft.from_parsed(raw, categories)

        assert draft.name == "薯片"
        assert draft.unit_price_text == "6.5"
        assert draft.quantity == 3
        assert draft.unit == "个"
        assert draft.category.name == "食物"
        assert draft.subcategory.name == "零食"
        assert draft.tag_names == ["Temu", "乐事"]
        assert draft.acquired_date == date(2025, 3, 1)
        assert draft.show_acquired_date is True
        assert draft.is_selected is True

    def test_defaults_for_empty_record(self, categories):
        draft = ImportDraft.from_parsed(ParsedReceipt(), categories)
        assert draft.name == ""
        assert draft.quantity == 1.0
        assert draft.category is None
        assert draft.acquired_date is None
        assert draft.show_acquired_date is False

    def test_category_match_is_exact(self, categories):
        raw = ParsedReceipt(name="x", matched_category_name="食")
        assert ImportDraft.from_parsed(raw, categories).category is None

    def test_unknown_subcategory_left_unset(self, categories):
        raw = ParsedReceipt(name="x", matched_category_name="食物",
                            matched_subcategory_name="饮料")
        draft = ImportDraft.from_parsed(raw, categories)
        assert draft.category.name == "食物"
        assert draft.subcategory is None

    def test_subcategory_only_searched_in_matched_category(self, taxonomy, categories):
        daily = taxonomy.find_category("日用品")
        taxonomy.create_subcategory(daily.id, "清洁")
        raw = ParsedReceipt(name="x", matched_category_name="食物",
                            matched_subcategory_name="清洁")
        draft = ImportDraft.from_parsed(raw, taxonomy.list_categories())
        assert draft.subcategory is None

    def test_add_tag(self):
        draft = ImportDraft(tag_names=["eBay"])
        assert draft.add_tag(" 二手 ") is True
        assert draft.add_tag("eBay") is False
        assert draft.add_tag("  ") is False
        assert draft.tag_names == ["eBay", "二手"]

    def test_to_item_requires_category(self):
        with pytest.raises(ValueError):
            ImportDraft(name="x").to_item()


class TestCommitDrafts:
    def test_saves_and_counts_missing_category(self, items, categories):
        records = [
            ParsedReceipt(name="牛奶", unit_price_string="12.50", matched_category_name="食物",
                          tag_names=["eBay"]),
            ParsedReceipt(name="神秘商品", matched_category_name="不存在"),
            ParsedReceipt(name="纸巾", matched_category_name="日用品", quantity=2),
        ]
        drafts = build_drafts(records, categories)

        result = commit_drafts(drafts, items, Currency.CNY, rate=7.0)

        assert result.saved_count == 2
        assert result.missing_category == 1
        assert result.message == "已保存 2 项，1 项因缺少分类未保存"
        stored = {i.name: i for i in items.list_items()}
        assert set(stored) == {"牛奶", "纸巾"}
        milk = stored["牛奶"]
        assert milk.unit_price == 12.5
        assert milk.original_currency is Currency.CNY
        assert milk.normalized_price == pytest.approx(12.5 / 7.0)
        assert milk.source_type is SourceType.AI
        assert milk.tag_names == ["eBay"]
        assert stored["纸巾"].quantity == 2

    def test_rejected_draft_does_not_stop_batch(self, items, categories):
        records = [
            ParsedReceipt(name="苹果", matched_category_name="食物"),
            ParsedReceipt(name="过期分类", matched_category_name="食物"),
            ParsedReceipt(name="香蕉", matched_category_name="食物"),
            ParsedReceipt(name="无分类"),
        ]
        drafts = build_drafts(records, categories)
        # category deleted after the scan
        drafts[1].category = Category(name="已删除", id="ghost")

        result = commit_drafts(drafts, items)

        assert [i.name for i in result.saved] == ["苹果", "香蕉"]
        assert result.failed == 1
        assert result.missing_category == 1
        assert result.message == "已保存 2 项，1 项因缺少分类未保存，1 项保存失败"
        assert {i.name for i in items.list_items()} == {"苹果", "香蕉"}

    def test_unselected_drafts_skipped(self, items, categories):
        drafts = build_drafts([ParsedReceipt(name="a", matched_category_name="食物")], categories)
        drafts[0].is_selected = False
        result = commit_drafts(drafts, items)
        assert result.saved_count == 0
        assert result.message is None
        assert items.list_items() == []

    def test_tags_shared_across_batch(self, items, tags, categories):
        records = [
            ParsedReceipt(name=n, matched_category_name="食物", tag_names=["Amazon"])
            for n in ("a", "b")
        ]
        commit_drafts(build_drafts(records, categories), items)
        assert [t.name for t in tags.list_tags()] == ["Amazon"]

    def test_malformed_price_saved_as_absent(self, items, categories):
        drafts = build_drafts(
            [ParsedReceipt(name="a", unit_price_string="约十元", matched_category_name="食物")],
            categories,
        )
        saved = commit_drafts(drafts, items).saved[0]
        assert saved.unit_price is None
        assert saved.normalized_price == 0.0

    def test_acquired_date_only_when_shown(self, items, categories):
        drafts = build_drafts(
            [ParsedReceipt(name="a", matched_category_name="食物",
                           acquired_date_string="2025-03-01")],
            categories,
        )
        drafts[0].show_acquired_date = False
        saved = commit_drafts(drafts, items).saved[0]
        assert saved.acquired_date is None
