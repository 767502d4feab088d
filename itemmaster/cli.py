"""CLI entry point for the household item catalogue."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from datetime import date
from enum import Enum
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from .config import AppConfig, load_config
from .currency import convert, format_amount
from .dashboard import (
    category_summary,
    format_value,
    percentage,
    subcategory_summary,
    total_value,
)
from .db import ItemDB, SettingsDB, TaxonomyDB
from .errors import InventoryError, NotFoundError
from .images import ImageStore
from .models import Category, Currency, DisplaySettings, Item, Location, Metric, SortKey
from .receipt import ReceiptScanError, create_scanner, describe_categories
from .receipt.coordinator import ScanCoordinator
from .receipt.importer import build_drafts, commit_drafts
from .reminders import run_check
from .sorting import search_items, sort_items
from .units import format_quantity, parse_quantity


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="itemmaster",
        description="物品管家：记录家中物品的分类、位置、价格与保质期",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="配置文件路径 (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="输出调试日志"
    )

    sub = parser.add_subparsers(dest="command")

    # categories
    cat_parser = sub.add_parser("categories", help="管理一级分类")
    cat_sub = cat_parser.add_subparsers(dest="action")
    cat_sub.add_parser("list", help="列出分类")
    p = cat_sub.add_parser("add", help="新建分类")
    p.add_argument("name")
    p = cat_sub.add_parser("rename", help="重命名分类")
    p.add_argument("name")
    p.add_argument("new_name")
    p = cat_sub.add_parser("delete", help="删除分类 (仅限没有物品的分类)")
    p.add_argument("name")
    p = cat_sub.add_parser("move", help="调整分类顺序")
    p.add_argument("name")
    p.add_argument("index", type=int)

    # subcategories
    subcat_parser = sub.add_parser("subcategories", help="管理二级分类")
    subcat_sub = subcat_parser.add_subparsers(dest="action")
    p = subcat_sub.add_parser("list", help="列出二级分类")
    p.add_argument("category")
    p = subcat_sub.add_parser("add", help="新建二级分类")
    p.add_argument("category")
    p.add_argument("name")
    p = subcat_sub.add_parser("rename", help="重命名二级分类")
    p.add_argument("category")
    p.add_argument("name")
    p.add_argument("new_name")
    p = subcat_sub.add_parser("delete", help="删除二级分类 (仅限没有物品的二级分类)")
    p.add_argument("category")
    p.add_argument("name")
    p = subcat_sub.add_parser("move", help="调整二级分类顺序")
    p.add_argument("category")
    p.add_argument("name")
    p.add_argument("index", type=int)

    # locations
    loc_parser = sub.add_parser("locations", help="管理位置")
    loc_sub = loc_parser.add_subparsers(dest="action")
    loc_sub.add_parser("list", help="列出位置")
    p = loc_sub.add_parser("add", help="新建位置")
    p.add_argument("name")
    p.add_argument("--parent", type=str, default=None, help="上级位置 (新建二级位置)")
    p = loc_sub.add_parser("delete", help="删除位置")
    p.add_argument("name")
    p.add_argument("--parent", type=str, default=None, help="上级位置 (删除二级位置)")

    # items
    items_parser = sub.add_parser("items", help="管理物品")
    items_sub = items_parser.add_subparsers(dest="action")
    p = items_sub.add_parser("list", help="列出物品")
    p.add_argument("--category", type=str, default=None)
    p.add_argument("--subcategory", type=str, default=None)
    p.add_argument("--uncategorized", action="store_true", help="只显示未分到二级分类的物品")
    p.add_argument(
        "--sort",
        choices=[k.value for k in SortKey],
        default=None,
        help="排序方式 (默认按创建时间倒序)",
    )
    p.add_argument("--desc", action="store_true", help="降序")
    p.add_argument("--json", action="store_true", help="JSON格式输出")

    p = items_sub.add_parser("add", help="新增物品")
    p.add_argument("name")
    p.add_argument("--category", required=True)
    p.add_argument("--subcategory", default=None)
    p.add_argument("--location", default=None)
    p.add_argument("--sublocation", default=None)
    p.add_argument("--quantity", default="1", help="数量, 支持 1/2 或 半")
    p.add_argument("--unit", default="个")
    p.add_argument("--min-quantity", type=float, default=0.0, help="安全库存")
    p.add_argument("--price", type=float, default=None, help="单价")
    p.add_argument("--currency", choices=[c.value for c in Currency], default=None)
    p.add_argument("--acquired", type=date.fromisoformat, default=None, metavar="YYYY-MM-DD")
    p.add_argument("--expiry", type=date.fromisoformat, default=None, metavar="YYYY-MM-DD")
    p.add_argument("--restock-days", type=int, default=None, help="补货周期 (天)")
    p.add_argument("--tag", action="append", default=[], help="标签 (可重复)")
    p.add_argument("--brand", default=None)
    p.add_argument("--notes", default=None)
    p.add_argument("--image", type=str, default=None, help="物品照片")

    p = items_sub.add_parser("show", help="查看物品详情")
    p.add_argument("id")
    p = items_sub.add_parser("delete", help="删除物品")
    p.add_argument("id")
    p = items_sub.add_parser("restock", help="记录补货")
    p.add_argument("id")
    p.add_argument("--add", type=float, default=0.0, help="补充数量")

    # search
    p = sub.add_parser("search", help="按名称/标签/分类搜索物品")
    p.add_argument("query")

    # dashboard
    p = sub.add_parser("dashboard", help="按分类统计数量或价值")
    p.add_argument("--metric", choices=[m.value for m in Metric], default="count")
    p.add_argument("--category", type=str, default=None, help="查看某分类的二级分类明细")

    # currency / rate
    p = sub.add_parser("currency", help="查看或设置显示币种")
    p.add_argument("code", nargs="?", choices=[c.value for c in Currency])
    p = sub.add_parser("rate", help="查看或设置汇率 (1 USD = ? CNY)")
    p.add_argument("value", nargs="?", type=float)

    # scan
    p = sub.add_parser("scan", help="识别购物小票/订单截图")
    p.add_argument("image", type=str)
    p.add_argument("--json", action="store_true", help="JSON格式输出")
    p.add_argument("--save", action="store_true", help="保存已匹配到分类的物品")
    p.add_argument("--currency", choices=[c.value for c in Currency], default=None)

    # reminders
    sub.add_parser("reminders", help="检查过期与补货")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # API keys may come from a .env file in the working directory
    load_dotenv(find_dotenv(usecwd=True))

    try:
        config = load_config(args.config)
        stores = _Stores(config)
        try:
            _dispatch(config, stores, args)
        finally:
            stores.close()
    except (InventoryError, ReceiptScanError, ValueError, OSError) as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)


class _Stores:
    """The databases a command works on, opened lazily and seeded on first use."""

    def __init__(self, config: AppConfig) -> None:
        db_path = config.storage.db_path
        self.config = config
        self.images = ImageStore(config.storage.image_dir)
        self.taxonomy = TaxonomyDB(db_path)
        self.items = ItemDB(db_path, image_store=self.images)
        self.settings = SettingsDB(db_path)
        self.taxonomy.seed_defaults()

    def display(self) -> DisplaySettings:
        return self.settings.display_settings(self.config.display_defaults())

    def close(self) -> None:
        self.taxonomy.close()
        self.items.close()
        self.settings.close()


def _dispatch(config: AppConfig, stores: _Stores, args) -> None:
    match args.command:
        case "categories":
            _cmd_categories(stores, args)
        case "subcategories":
            _cmd_subcategories(stores, args)
        case "locations":
            _cmd_locations(stores, args)
        case "items":
            _cmd_items(stores, args)
        case "search":
            _cmd_search(stores, args)
        case "dashboard":
            _cmd_dashboard(stores, args)
        case "currency":
            _cmd_currency(stores, args)
        case "rate":
            _cmd_rate(stores, args)
        case "scan":
            asyncio.run(_cmd_scan(config, stores, args))
        case "reminders":
            _cmd_reminders(config, stores)


# ---------------------------------------------------------------------------
# Look-ups by name
# ---------------------------------------------------------------------------


def _category(stores: _Stores, name: str) -> Category:
    category = stores.taxonomy.find_category(name)
    if category is None:
        raise NotFoundError("分类", name)
    return category


def _subcategory_id(category: Category, name: str | None) -> str | None:
    if name is None:
        return None
    sub = category.find_subcategory(name)
    if sub is None:
        raise NotFoundError("二级分类", name)
    return sub.id


def _location(stores: _Stores, name: str) -> Location:
    location = stores.taxonomy.find_location(name)
    if location is None:
        raise NotFoundError("位置", name)
    return location


def _sublocation_id(location: Location, name: str) -> str:
    sub = next((s for s in location.sublocations if s.name == name), None)
    if sub is None:
        raise NotFoundError("二级位置", name)
    return sub.id


# ---------------------------------------------------------------------------
# Taxonomy commands
# ---------------------------------------------------------------------------


def _cmd_categories(stores: _Stores, args) -> None:
    taxonomy = stores.taxonomy
    match args.action:
        case "add":
            category = taxonomy.create_category(args.name)
            print(f"已新建分类: {category.name}")
        case "rename":
            category = _category(stores, args.name)
            if taxonomy.rename_category(category.id, args.new_name):
                print(f"已重命名: {args.name} → {args.new_name.strip()}")
        case "delete":
            category = _category(stores, args.name)
            taxonomy.delete_category(category.id)
            print(f"已删除分类: {category.name}")
        case "move":
            category = _category(stores, args.name)
            taxonomy.move_category(category.id, args.index)
            _print_categories(stores)
        case _:
            _print_categories(stores)


def _print_categories(stores: _Stores) -> None:
    categories = stores.taxonomy.list_categories()
    if not categories:
        print("暂无分类。")
        return
    for category in categories:
        count = stores.taxonomy.category_item_count(category.id)
        subs = ", ".join(s.name for s in category.subcategories)
        suffix = f"  ({subs})" if subs else ""
        print(f"  {category.name}  [{count} 件]{suffix}")


def _cmd_subcategories(stores: _Stores, args) -> None:
    taxonomy = stores.taxonomy
    category = _category(stores, args.category)
    match args.action:
        case "add":
            sub = taxonomy.create_subcategory(category.id, args.name)
            print(f"已新建二级分类: {category.name} / {sub.name}")
        case "rename":
            sub_id = _subcategory_id(category, args.name)
            if taxonomy.rename_subcategory(sub_id, args.new_name):
                print(f"已重命名: {args.name} → {args.new_name.strip()}")
        case "delete":
            sub_id = _subcategory_id(category, args.name)
            taxonomy.delete_subcategory(sub_id)
            print(f"已删除二级分类: {category.name} / {args.name}")
        case "move":
            sub_id = _subcategory_id(category, args.name)
            taxonomy.move_subcategory(sub_id, args.index)
            _print_subcategories(stores, category.id)
        case _:
            _print_subcategories(stores, category.id)


def _print_subcategories(stores: _Stores, category_id: str) -> None:
    subs = stores.taxonomy.list_subcategories(category_id)
    if not subs:
        print("暂无二级分类。")
        return
    for sub in subs:
        count = stores.taxonomy.subcategory_item_count(sub.id)
        print(f"  {sub.name}  [{count} 件]")


def _cmd_locations(stores: _Stores, args) -> None:
    taxonomy = stores.taxonomy
    match args.action:
        case "add":
            if args.parent:
                parent = _location(stores, args.parent)
                sub = taxonomy.create_sublocation(parent.id, args.name)
                print(f"已新建二级位置: {parent.name} / {sub.name}")
            else:
                location = taxonomy.create_location(args.name)
                print(f"已新建位置: {location.name}")
        case "delete":
            if args.parent:
                parent = _location(stores, args.parent)
                taxonomy.delete_sublocation(_sublocation_id(parent, args.name))
                print(f"已删除二级位置: {parent.name} / {args.name}")
            else:
                location = _location(stores, args.name)
                taxonomy.delete_location(location.id)
                print(f"已删除位置: {location.name}")
        case _:
            locations = taxonomy.list_locations()
            if not locations:
                print("暂无位置。")
                return
            for location in locations:
                subs = ", ".join(s.name for s in location.sublocations)
                suffix = f"  ({subs})" if subs else ""
                print(f"  {location.name}{suffix}")


# ---------------------------------------------------------------------------
# Item commands
# ---------------------------------------------------------------------------


def _cmd_items(stores: _Stores, args) -> None:
    match args.action:
        case "add":
            _cmd_items_add(stores, args)
        case "show":
            _print_item_detail(stores, stores.items.get_item(args.id))
        case "delete":
            item = stores.items.get_item(args.id)
            stores.items.delete_item(item.id)
            print(f"已删除: {item.name}")
        case "restock":
            item = stores.items.mark_restocked(args.id, added_quantity=args.add)
            print(f"已补货: {item.name}  数量 {format_quantity(item.quantity)}{item.unit}")
        case _:
            _cmd_items_list(stores, args)


def _cmd_items_list(stores: _Stores, args) -> None:
    category_id = subcategory_id = None
    if args.subcategory and not args.category:
        raise ValueError("--subcategory 需要同时指定 --category")
    if args.category:
        category = _category(stores, args.category)
        category_id = category.id
        subcategory_id = _subcategory_id(category, args.subcategory)
    items = stores.items.list_items(
        category_id=category_id,
        subcategory_id=subcategory_id,
        uncategorized=args.uncategorized and category_id is not None,
    )
    if args.sort:
        items = sort_items(items, SortKey(args.sort), ascending=not args.desc)
    _print_items(stores, items, as_json=args.json)


def _cmd_items_add(stores: _Stores, args) -> None:
    category = _category(stores, args.category)
    location_id = sublocation_id = None
    if args.location:
        location = _location(stores, args.location)
        location_id = location.id
        if args.sublocation:
            sublocation_id = _sublocation_id(location, args.sublocation)

    quantity = parse_quantity(args.quantity)
    if quantity is None:
        raise ValueError(f"无效的数量: {args.quantity}")

    settings = stores.display()
    image_filename = None
    if args.image:
        image_filename = stores.images.save(
            Path(args.image).read_bytes(), suffix=Path(args.image).suffix or ".jpg"
        )

    item = Item(
        category_id=category.id,
        subcategory_id=_subcategory_id(category, args.subcategory),
        name=args.name,
        location_id=location_id,
        sublocation_id=sublocation_id,
        quantity=quantity,
        unit=args.unit,
        min_quantity=args.min_quantity,
        unit_price=args.price,
        original_currency=Currency(args.currency) if args.currency else settings.currency,
        acquired_date=args.acquired,
        expiry_date=args.expiry,
        restock_interval_days=args.restock_days,
        brand=args.brand,
        notes=args.notes,
        image_filename=image_filename,
    )
    try:
        item = stores.items.add_item(item, tag_names=args.tag, rate=settings.exchange_rate)
    except InventoryError:
        if image_filename:
            stores.images.delete(image_filename)
        raise
    print(f"已新增: {item.name}  (id: {item.id})")


def _cmd_search(stores: _Stores, args) -> None:
    categories = stores.taxonomy.list_categories()
    matches = search_items(stores.items.list_items(), args.query, categories)
    if not matches:
        print("没有找到匹配的物品。")
        return
    _print_items(stores, matches, categories=categories)


def _price_text(item: Item, settings: DisplaySettings) -> str:
    if item.unit_price is None:
        return "-"
    price = convert(
        item.unit_price, item.original_currency, settings.currency, settings.exchange_rate
    )
    return format_amount(price, settings.currency)


def _status_text(item: Item, warning_days: int) -> str:
    marks = []
    if item.expired_on():
        marks.append("已过期")
    elif item.expiring_soon_on(warning_days=warning_days):
        marks.append("即将过期")
    if item.needs_restock:
        marks.append("需补货")
    return " ".join(f"[{m}]" for m in marks)


def _item_to_dict(item: Item) -> dict:
    data = dataclasses.asdict(item)
    data["tags"] = item.tag_names
    for key, value in data.items():
        if isinstance(value, date):
            data[key] = value.isoformat()
        elif isinstance(value, Enum):
            data[key] = value.value
    return data


def _print_items(
    stores: _Stores,
    items: list[Item],
    as_json: bool = False,
    categories: list[Category] | None = None,
) -> None:
    if as_json:
        print(json.dumps([_item_to_dict(i) for i in items], ensure_ascii=False, indent=2))
        return
    if not items:
        print("暂无物品。")
        return

    settings = stores.display()
    warning_days = stores.config.display.expiry_warning_days
    categories = categories if categories is not None else stores.taxonomy.list_categories()
    by_id = {c.id: c for c in categories}
    for item in items:
        category = by_id.get(item.category_id)
        path = category.name if category else "?"
        if category and item.subcategory_id:
            sub = next((s for s in category.subcategories if s.id == item.subcategory_id), None)
            if sub:
                path += f"/{sub.name}"
        expiry = f"  过期: {item.expiry_date.isoformat()}" if item.expiry_date else ""
        status = _status_text(item, warning_days)
        print(
            f"  {item.name}  {format_quantity(item.quantity)}{item.unit}  "
            f"{_price_text(item, settings)}  [{path}]{expiry}"
            + (f"  {status}" if status else "")
        )
        print(f"    id: {item.id}")


def _print_item_detail(stores: _Stores, item: Item) -> None:
    settings = stores.display()
    category = stores.taxonomy.get_category(item.category_id)
    print(f"名称: {item.name}")
    print(f"分类: {category.name}")
    if item.subcategory_id:
        print(f"二级分类: {stores.taxonomy.get_subcategory(item.subcategory_id).name}")
    if item.location_id:
        print(f"位置: {stores.taxonomy.get_location(item.location_id).name}")
    print(f"数量: {format_quantity(item.quantity)}{item.unit}  (安全库存 {format_quantity(item.min_quantity)})")
    print(f"单价: {_price_text(item, settings)}")
    if item.brand:
        print(f"品牌: {item.brand}")
    if item.tags:
        print(f"标签: {', '.join(item.tag_names)}")
    if item.acquired_date:
        print(f"获取日期: {item.acquired_date.isoformat()}")
    if item.expiry_date:
        print(f"过期日期: {item.expiry_date.isoformat()}")
    status = _status_text(item, stores.config.display.expiry_warning_days)
    if status:
        print(f"状态: {status}")
    if item.image_filename:
        print(f"照片: {stores.images.image_dir / item.image_filename}")
    if item.notes:
        print(f"备注: {item.notes}")


# ---------------------------------------------------------------------------
# Dashboard & settings
# ---------------------------------------------------------------------------


def _cmd_dashboard(stores: _Stores, args) -> None:
    metric = Metric(args.metric)
    settings = stores.display()
    items = stores.items.list_items()

    if args.category:
        category = _category(stores, args.category)
        stats = subcategory_summary(items, category, metric, settings)
        rows = [(s.name, s.value) for s in stats]
        title = category.name
    else:
        categories = stores.taxonomy.list_categories()
        stats = category_summary(items, categories, metric, settings)
        rows = [(s.category.name, s.value) for s in stats]
        title = "全部分类"

    total = total_value(stats)
    label = "数量" if metric is Metric.COUNT else "价值"
    print(f"{title}  总{label}: {format_value(total, metric, settings)}")
    for name, value in rows:
        print(
            f"  {name:<12} {format_value(value, metric, settings):>12}  "
            f"{percentage(value, total):>6}"
        )


def _cmd_currency(stores: _Stores, args) -> None:
    if args.code:
        stores.settings.set_display_currency(args.code)
    print(f"显示币种: {stores.display().currency.value}")


def _cmd_rate(stores: _Stores, args) -> None:
    if args.value is not None:
        stores.settings.set_exchange_rate(args.value)
    print(f"汇率: 1 USD = {stores.display().exchange_rate} CNY")


# ---------------------------------------------------------------------------
# Receipt scanning & reminders
# ---------------------------------------------------------------------------


async def _cmd_scan(config: AppConfig, stores: _Stores, args) -> None:
    categories = stores.taxonomy.list_categories()
    scanner = create_scanner(config)
    coordinator = ScanCoordinator(scanner)

    print("🔍 识别中...", file=sys.stderr)
    records = await coordinator.scan(args.image, describe_categories(categories))
    drafts = build_drafts(records, categories)

    if args.json:
        print(json.dumps([dataclasses.asdict(r) for r in records], ensure_ascii=False, indent=2))
    else:
        if not drafts:
            print("未识别到商品。")
            return
        print(f"\n🧾 识别到 {len(drafts)} 件商品:")
        for draft in drafts:
            path = draft.category.name if draft.category else "(未匹配分类)"
            if draft.subcategory:
                path += f"/{draft.subcategory.name}"
            price = draft.unit_price_text or "-"
            print(f"  {draft.name or '(无名称)'}  ×{format_quantity(draft.quantity)}  {price}  [{path}]")

    if args.save:
        settings = stores.display()
        currency = args.currency or settings.currency
        result = commit_drafts(drafts, stores.items, currency, settings.exchange_rate)
        print(f"已保存 {result.saved_count} 项", file=sys.stderr)
        if result.message:
            print(result.message, file=sys.stderr)


def _cmd_reminders(config: AppConfig, stores: _Stores) -> None:
    summary = run_check(stores.items, warning_days=config.display.expiry_warning_days)
    labels = {"expired": "已过期", "expiring": "即将过期", "restock": "需要补货"}
    if not any(summary.values()):
        print("没有需要提醒的物品。")
        return
    for key, label in labels.items():
        if summary[key]:
            print(f"{label}: {', '.join(summary[key])}")
