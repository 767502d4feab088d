"""Data models for the household inventory: taxonomy, tags and items."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

# Days before the expiry date at which an item counts as "expiring soon".
EXPIRY_WARNING_DAYS = 7

DEFAULT_EXCHANGE_RATE = 7.0  # 1 USD = 7.0 CNY

DEFAULT_CATEGORIES: list[str] = ["食物", "日用品", "服饰", "电子产品"]
DEFAULT_LOCATIONS: list[str] = ["厨房", "客厅", "卧室", "浴室", "书房"]


def new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now()


class Currency(str, Enum):
    USD = "USD"
    CNY = "CNY"

    @property
    def symbol(self) -> str:
        return "$" if self is Currency.USD else "¥"


class SourceType(str, Enum):
    MANUAL = "manual"
    AI = "ai"


class SortKey(str, Enum):
    """Sort dimensions offered by item lists."""

    EXPIRY_DATE = "expiry_date"
    UNIT_PRICE = "unit_price"
    ACQUIRED_DATE = "acquired_date"
    QUANTITY = "quantity"

    @property
    def label(self) -> str:
        return _SORT_LABELS[self]


_SORT_LABELS = {
    SortKey.EXPIRY_DATE: "过期时间",
    SortKey.UNIT_PRICE: "购买价格",
    SortKey.ACQUIRED_DATE: "获取时间",
    SortKey.QUANTITY: "数量",
}


class Metric(str, Enum):
    """Dashboard aggregation metric."""

    COUNT = "count"  # sum of quantity
    VALUE = "value"  # sum of converted unit price x quantity


@dataclass(frozen=True)
class DisplaySettings:
    """Display currency and exchange rate in effect for one render."""

    currency: Currency = Currency.USD
    exchange_rate: float = DEFAULT_EXCHANGE_RATE


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------


@dataclass
class Subcategory:
    """Second-level category, e.g. 食物 → 零食. There is no third level."""

    name: str
    category_id: str
    sort_order: int = 0
    icon_name: str | None = None
    id: str = field(default_factory=new_id)


@dataclass
class Category:
    """First-level category, e.g. 食物 / 日用品 / 服饰 / 电子产品."""

    name: str
    sort_order: int = 0
    is_default: bool = False
    icon_name: str | None = None
    # Display position of the synthetic "uncategorized" bucket among subcategories
    uncategorized_sort_order: int = 0
    id: str = field(default_factory=new_id)
    subcategories: list[Subcategory] = field(default_factory=list)

    @property
    def uncategorized_label(self) -> str:
        return f"{self.name}(未分类)"

    def find_subcategory(self, name: str) -> Subcategory | None:
        return next((s for s in self.subcategories if s.name == name), None)


@dataclass
class Sublocation:
    """Second-level location, e.g. 厨房 → 冰箱."""

    name: str
    location_id: str
    sort_order: int = 0
    icon_name: str | None = None
    coordinates_data: str | None = None  # floor-plan coordinates (JSON)
    id: str = field(default_factory=new_id)


@dataclass
class Location:
    """First-level location, e.g. 厨房 / 客厅 / 卧室."""

    name: str
    sort_order: int = 0
    is_default: bool = False
    icon_name: str | None = None
    coordinates_data: str | None = None
    id: str = field(default_factory=new_id)
    sublocations: list[Sublocation] = field(default_factory=list)


@dataclass
class Tag:
    name: str
    id: str = field(default_factory=new_id)


# ---------------------------------------------------------------------------
# Item
# ---------------------------------------------------------------------------


@dataclass
class Item:
    """A single catalogued household item.

    Taxonomy references are ids; membership of a category is answered by
    querying items, never by a list kept on the category.
    """

    category_id: str
    name: str = ""
    subcategory_id: str | None = None
    location_id: str | None = None
    sublocation_id: str | None = None

    quantity: float = 1.0
    unit: str = "个"
    min_quantity: float = 0.0

    unit_price: float | None = None
    original_currency: Currency = Currency.USD
    # unit_price in USD at save time, for store-side price ordering
    normalized_price: float = 0.0

    brand: str | None = None
    barcode: str | None = None
    url: str | None = None
    is_archived: bool = False
    is_favorite: bool = False
    source_type: SourceType = SourceType.MANUAL

    acquired_date: date | None = None
    expiry_date: date | None = None
    warranty_expiry_date: date | None = None
    shelf_life_days: int | None = None

    restock_interval_days: int | None = None
    last_restocked_date: date | None = field(default_factory=date.today)
    is_restock_notified: bool = False

    tags: list[Tag] = field(default_factory=list)
    image_filename: str | None = None
    notes: str | None = None

    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        if not self.name.strip():
            self.name = self.id
        self.original_currency = Currency(self.original_currency)
        self.source_type = SourceType(self.source_type)

    @property
    def tag_names(self) -> list[str]:
        return [t.name for t in self.tags]

    # -- derived state, recomputed on every read --------------------------

    def days_until_expiry(self, today: date | None = None) -> int | None:
        if self.expiry_date is None:
            return None
        return (self.expiry_date - (today or date.today())).days

    def expiring_soon_on(
        self, today: date | None = None, warning_days: int = EXPIRY_WARNING_DAYS
    ) -> bool:
        days_left = self.days_until_expiry(today)
        if days_left is None:
            return False
        return 0 <= days_left <= warning_days

    def expired_on(self, today: date | None = None) -> bool:
        days_left = self.days_until_expiry(today)
        return days_left is not None and days_left < 0

    def needs_restock_on(self, today: date | None = None) -> bool:
        if self.quantity <= self.min_quantity:
            return True
        if self.restock_interval_days is None or self.last_restocked_date is None:
            return False
        days_since = ((today or date.today()) - self.last_restocked_date).days
        return days_since >= self.restock_interval_days

    @property
    def is_expiring_soon(self) -> bool:
        return self.expiring_soon_on()

    @property
    def is_expired(self) -> bool:
        return self.expired_on()

    @property
    def needs_restock(self) -> bool:
        return self.needs_restock_on()


# ---------------------------------------------------------------------------
# Receipt scanning
# ---------------------------------------------------------------------------


@dataclass
class ParsedReceipt:
    """One product line read from a receipt or order screenshot.

    Every field is optional; the scanner fills what it can recognise.
    """

    name: str | None = None
    unit_price_string: str | None = None
    quantity: float | None = None
    matched_category_name: str | None = None
    matched_subcategory_name: str | None = None
    tag_names: list[str] = field(default_factory=list)
    notes: str | None = None
    acquired_date_string: str | None = None  # YYYY-MM-DD
    brand: str | None = None

    def with_brand_tag(self) -> ParsedReceipt:
        """Append the brand to ``tag_names`` unless already present (case-insensitive)."""
        brand = (self.brand or "").strip()
        if brand and not any(t.casefold() == brand.casefold() for t in self.tag_names):
            self.tag_names.append(brand)
        return self
