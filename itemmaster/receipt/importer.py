"""Turn scanned receipt lines into draft items and save the ones the user keeps."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from ..currency import parse_amount
from ..errors import InventoryError
from ..models import Category, Currency, Item, ParsedReceipt, SourceType, Subcategory

logger = logging.getLogger(__name__)


def parse_receipt_date(text: str | None) -> date | None:
    """Strict ``YYYY-MM-DD``; anything else is ``None``."""
    if not text:
        return None
    try:
        return datetime.strptime(text.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


@dataclass
class ImportDraft:
    """An editable, pre-filled item awaiting confirmation.

    Building a draft never touches the store or the network; categories
    are matched by exact name and are never created.
    """

    name: str = ""
    unit_price_text: str = ""
    quantity: float = 1.0
    unit: str = "个"
    category: Category | None = None
    subcategory: Subcategory | None = None
    tag_names: list[str] = field(default_factory=list)
    notes: str = ""
    brand: str | None = None
    acquired_date: date | None = None
    show_acquired_date: bool = False
    is_selected: bool = True

    @classmethod
    def from_parsed(cls, raw: ParsedReceipt, categories: Iterable[Category]) -> ImportDraft:
        draft = cls()
        if raw.name:
            draft.name = raw.name
        if raw.unit_price_string is not None:
            draft.unit_price_text = raw.unit_price_string
        if raw.quantity is not None:
            draft.quantity = raw.quantity
        draft.tag_names = list(raw.tag_names)
        if raw.notes is not None:
            draft.notes = raw.notes
        draft.brand = raw.brand

        acquired = parse_receipt_date(raw.acquired_date_string)
        if acquired is not None:
            draft.acquired_date = acquired
            draft.show_acquired_date = True

        if raw.matched_category_name is not None:
            match = next(
                (c for c in categories if c.name == raw.matched_category_name), None
            )
            if match is not None:
                draft.category = match
                if raw.matched_subcategory_name is not None:
                    draft.subcategory = match.find_subcategory(raw.matched_subcategory_name)

        # Brand tag is normally added by the scanner; repeat it for records
        # built elsewhere.
        brand = (raw.brand or "").strip()
        if brand and not any(t.casefold() == brand.casefold() for t in draft.tag_names):
            draft.tag_names.append(brand)
        return draft

    def add_tag(self, name: str) -> bool:
        """Add a tag typed by the user. Blank and exact duplicates are ignored."""
        trimmed = name.strip()
        if not trimmed or trimmed in self.tag_names:
            return False
        self.tag_names.append(trimmed)
        return True

    def to_item(self, currency: Currency | str = Currency.USD) -> Item:
        """Build the unsaved item. The draft must have a category."""
        if self.category is None:
            raise ValueError("draft has no category")
        return Item(
            category_id=self.category.id,
            subcategory_id=self.subcategory.id if self.subcategory else None,
            name=self.name,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=parse_amount(self.unit_price_text),
            original_currency=Currency(currency),
            acquired_date=(self.acquired_date or date.today()) if self.show_acquired_date else None,
            notes=self.notes or None,
            source_type=SourceType.AI,
        )


@dataclass
class ImportResult:
    saved: list[Item] = field(default_factory=list)
    missing_category: int = 0
    failed: int = 0

    @property
    def saved_count(self) -> int:
        return len(self.saved)

    @property
    def message(self) -> str | None:
        """Warning for the user, or ``None`` when every selected draft was saved."""
        if self.missing_category == 0 and self.failed == 0:
            return None
        parts = [f"已保存 {self.saved_count} 项"]
        if self.missing_category:
            parts.append(f"{self.missing_category} 项因缺少分类未保存")
        if self.failed:
            parts.append(f"{self.failed} 项保存失败")
        return "，".join(parts)


def build_drafts(
    records: Iterable[ParsedReceipt], categories: Iterable[Category]
) -> list[ImportDraft]:
    categories = list(categories)
    return [ImportDraft.from_parsed(r, categories) for r in records]


def commit_drafts(
    drafts: Iterable[ImportDraft],
    item_db,
    currency: Currency | str = Currency.USD,
    rate: float | None = None,
) -> ImportResult:
    """Save every selected draft that has a category.

    Drafts without a category are skipped and counted, as are drafts the
    store rejects (e.g. their category was deleted after the scan). Each
    item is committed on its own, so one bad draft never loses the rest.

    Args:
        drafts: Drafts from :func:`build_drafts`, possibly edited.
        item_db: :class:`~itemmaster.db.ItemDB` to insert into.
        currency: Currency the receipt prices are in.
        rate: 1 USD = ``rate`` CNY, for the normalized price.
    """
    result = ImportResult()
    for draft in drafts:
        if not draft.is_selected:
            continue
        if draft.category is None:
            result.missing_category += 1
            continue
        try:
            item = item_db.add_item(
                draft.to_item(currency), tag_names=draft.tag_names, rate=rate
            )
        except InventoryError as e:
            logger.warning("导入失败: %s (%s)", draft.name, e)
            result.failed += 1
            continue
        result.saved.append(item)

    logger.info(
        "批量导入: 保存 %d 项, 缺少分类 %d 项, 失败 %d 项",
        result.saved_count,
        result.missing_category,
        result.failed,
    )
    return result
