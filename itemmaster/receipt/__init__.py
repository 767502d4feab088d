"""Receipt scanner base class, response parsing, and factory."""

from __future__ import annotations

import json
import math
import mimetypes
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..models import Category, ParsedReceipt
from ..units import parse_quantity
from .errors import (
    APIError,
    ImageProcessingFailed,
    InvalidResponseFormat,
    InvalidURL,
    ReceiptScanError,
    ScanConnectionError,
)

if TYPE_CHECKING:
    from ..config import AppConfig

__all__ = [
    "APIError",
    "ImageProcessingFailed",
    "InvalidResponseFormat",
    "InvalidURL",
    "ParsedReceipt",
    "ReceiptScanError",
    "ReceiptScanner",
    "ScanConnectionError",
    "build_prompt",
    "create_scanner",
    "describe_categories",
    "load_image",
    "parse_receipt_response",
]

_PROMPT = """\
你是一个专业的账单解析专家。请分析图片中包含的**所有**独立商品。
请严格输出一个 JSON 对象，包含一个名为 `items` 的数组。数组中每个元素代表一个商品。
如果只发现一个商品，也请放入数组中。

每个商品对象的 key 必须是：name, brand, unitPriceString, quantity, \
matchedCategoryName, matchedSubcategoryName, tagNames, notes, acquiredDateString。

解析规则：
1. 名称 (name): 提取完整的商品名称，不包含品牌。
2. 品牌 (brand): 从商品名称或图片信息中提取品牌名称。无法确定时返回 null。
3. 日期 (acquiredDateString): 提取订单日期或送达日期，格式严格为 YYYY-MM-DD。\
图片中只有一个总日期时，所有商品使用该日期。
4. 来源/平台: 图片中出现电商平台名称（如 eBay, Amazon, Taobao, Temu）时，将其加入 tagNames 数组。
5. 分类匹配: 现有分类树为 [{categories}]。请从中挑选最合适的填入 \
matchedCategoryName 和 matchedSubcategoryName，没有合适的严格返回 null。
6. 金额 (unitPriceString): 单价的纯数字字符串。
7. 数量 (quantity): 数字。
"""

_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


class ReceiptScanner(ABC):
    """Abstract base for reading product lines out of a receipt image."""

    @abstractmethod
    async def scan(
        self, image_path: str | Path, category_context: str = ""
    ) -> list[ParsedReceipt]:
        """Recognise every product on the receipt.

        Args:
            image_path: Photo or screenshot of a receipt / order page.
            category_context: The existing category tree, as produced by
                :func:`describe_categories`, for the model to match against.

        Raises:
            ReceiptScanError: On any failure; nothing is retried.
        """
        ...


def describe_categories(categories: Iterable[Category]) -> str:
    """Render the category tree for the prompt, e.g. ``食物(零食, 蔬菜); 日用品``."""
    parts = []
    for category in sorted(categories, key=lambda c: c.sort_order):
        subs = sorted(category.subcategories, key=lambda s: s.sort_order)
        if subs:
            parts.append(f"{category.name}({', '.join(s.name for s in subs)})")
        else:
            parts.append(category.name)
    return "; ".join(parts)


def build_prompt(category_context: str) -> str:
    return _PROMPT.format(categories=category_context)


def load_image(image_path: str | Path) -> tuple[bytes, str]:
    """Read an image file and guess its media type.

    Raises:
        ImageProcessingFailed: If the file is unreadable, empty or not an image.
    """
    path = Path(image_path)
    media_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    if media_type not in _IMAGE_TYPES:
        raise ImageProcessingFailed()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImageProcessingFailed() from e
    if not data:
        raise ImageProcessingFailed()
    return data, media_type


def parse_receipt_response(text: str) -> list[ParsedReceipt]:
    """Parse the model's JSON reply into :class:`ParsedReceipt` records.

    Accepts ``{"items": [...]}`` or a bare array, optionally wrapped in
    Markdown code fences. The brand of each record is added to its tags.

    Raises:
        InvalidResponseFormat: If the reply is not the expected JSON shape.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise InvalidResponseFormat() from e

    records = data.get("items") if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise InvalidResponseFormat()

    results = []
    for raw in records:
        if not isinstance(raw, dict):
            raise InvalidResponseFormat()
        results.append(_to_parsed(raw).with_brand_tag())
    return results


def _opt_str(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    return None


def _opt_quantity(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) and value >= 0 else None
    if isinstance(value, str):
        return parse_quantity(value)
    return None


def _to_parsed(raw: dict) -> ParsedReceipt:
    tags = raw.get("tagNames")
    if not isinstance(tags, list):
        tags = []
    tag_names = [t for t in tags if isinstance(t, str) and t.strip()]
    return ParsedReceipt(
        name=_opt_str(raw.get("name")),
        unit_price_string=_opt_str(raw.get("unitPriceString")),
        quantity=_opt_quantity(raw.get("quantity")),
        matched_category_name=_opt_str(raw.get("matchedCategoryName")),
        matched_subcategory_name=_opt_str(raw.get("matchedSubcategoryName")),
        tag_names=tag_names,
        notes=_opt_str(raw.get("notes")),
        acquired_date_string=_opt_str(raw.get("acquiredDateString")),
        brand=_opt_str(raw.get("brand")),
    )


def create_scanner(config: AppConfig) -> ReceiptScanner:
    """Create a receipt scanner based on configuration."""
    backend_name = config.scanner.backend

    match backend_name:
        case "openai":
            from .openai import OpenAIReceiptScanner

            return OpenAIReceiptScanner(
                api_key=config.scanner.openai.api_key,
                model=config.scanner.openai.model,
                endpoint=config.scanner.openai.endpoint,
                timeout=config.scanner.openai.timeout,
            )
        case "claude":
            from .claude import ClaudeReceiptScanner

            return ClaudeReceiptScanner(
                api_key=config.scanner.claude.api_key,
                model=config.scanner.claude.model,
            )
        case _:
            raise ValueError(
                f"未知的识别后端: {backend_name!r}  (请从 openai / claude 中选择)"
            )
