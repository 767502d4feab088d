"""Item CRUD operations."""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..currency import to_usd
from ..errors import NotFoundError, ValidationError
from ..models import Currency, Item, SourceType, Tag
from .schema import ensure_schema
from .tags import resolve_tags

if TYPE_CHECKING:
    from ..images import ImageStore

logger = logging.getLogger(__name__)

_COLUMNS: list[str] = [
    "id",
    "name",
    "category_id",
    "subcategory_id",
    "location_id",
    "sublocation_id",
    "quantity",
    "unit",
    "min_quantity",
    "unit_price",
    "original_currency",
    "normalized_price",
    "brand",
    "barcode",
    "url",
    "is_archived",
    "is_favorite",
    "source_type",
    "acquired_date",
    "expiry_date",
    "warranty_expiry_date",
    "shelf_life_days",
    "restock_interval_days",
    "last_restocked_date",
    "is_restock_notified",
    "image_filename",
    "notes",
    "created_at",
    "updated_at",
]

_DATE_FIELDS = {"acquired_date", "expiry_date", "warranty_expiry_date", "last_restocked_date"}
_BOOL_FIELDS = {"is_archived", "is_favorite", "is_restock_notified"}

# Fields update_item() accepts; tags go through ``tag_names``.
_EDITABLE: frozenset[str] = frozenset(
    f.name for f in dataclasses.fields(Item)
    if f.name not in ("id", "tags", "normalized_price", "created_at", "updated_at")
) | {"tag_names"}

_ORDERINGS: dict[str, str] = {
    "created_at": "created_at DESC",
    "normalized_price": "normalized_price ASC, created_at DESC",
    "name": "name ASC",
}


class ItemDB:
    """Manages the items and item_tags tables.

    Args:
        db_path: SQLite database file.
        image_store: Receives ``delete`` calls for photos of deleted items and
            for replaced photos.
    """

    def __init__(
        self,
        db_path: str | Path = "~/.config/itemmaster/items.db",
        image_store: ImageStore | None = None,
    ) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._image_store = image_store

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, item: Item) -> None:
        """Check the taxonomy invariants before a write.

        Raises:
            ValidationError: Missing category, a subcategory of another
                category, a sublocation without its location, or a negative
                quantity.
        """
        conn = self._get_conn()
        if not item.category_id:
            raise ValidationError("请选择分类")
        if conn.execute(
            "SELECT 1 FROM categories WHERE id = ?", (item.category_id,)
        ).fetchone() is None:
            raise ValidationError(f"分类不存在: {item.category_id}")

        if item.subcategory_id is not None:
            row = conn.execute(
                "SELECT category_id FROM subcategories WHERE id = ?",
                (item.subcategory_id,),
            ).fetchone()
            if row is None or row["category_id"] != item.category_id:
                raise ValidationError("二级分类不属于所选分类")

        if item.location_id is not None and conn.execute(
            "SELECT 1 FROM locations WHERE id = ?", (item.location_id,)
        ).fetchone() is None:
            raise ValidationError(f"位置不存在: {item.location_id}")

        if item.sublocation_id is not None:
            if item.location_id is None:
                raise ValidationError("设置二级位置前请先选择位置")
            row = conn.execute(
                "SELECT location_id FROM sublocations WHERE id = ?",
                (item.sublocation_id,),
            ).fetchone()
            if row is None or row["location_id"] != item.location_id:
                raise ValidationError("二级位置不属于所选位置")

        if item.quantity < 0:
            raise ValidationError("数量不能为负数")
        if item.min_quantity < 0:
            raise ValidationError("安全库存不能为负数")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_item(
        self,
        item: Item,
        *,
        tag_names: list[str] | None = None,
        rate: float | None = None,
    ) -> Item:
        """Insert a new item.

        Args:
            item: The item to store. ``item.category_id`` is required.
            tag_names: Tags to attach; defaults to the names already on
                ``item.tags``. Existing tags are reused by exact name.
            rate: 1 USD = ``rate`` CNY, used for ``normalized_price``.

        Returns:
            The stored item with resolved tags.
        """
        self._validate(item)
        item.normalized_price = to_usd(item.unit_price, item.original_currency, rate)

        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO items ({', '.join(_COLUMNS)}) "
                f"VALUES ({', '.join(':' + c for c in _COLUMNS)})",
                _item_params(item),
            )
            names = item.tag_names if tag_names is None else tag_names
            item.tags = resolve_tags(conn, names)
            _link_tags(conn, item.id, item.tags)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise

        logger.info("新增物品: %s", item.name)
        return item

    def update_item(self, item_id: str, *, rate: float | None = None, **changes: Any) -> Item:
        """Edit an item in place.

        Changing ``category_id`` without naming a ``subcategory_id`` drops the
        old subcategory, which belonged to the old category; the same goes for
        locations. A blank ``name`` keeps the current name. Replacing or
        clearing ``image_filename`` deletes the previous photo.
        """
        unknown = set(changes) - _EDITABLE
        if unknown:
            raise ValidationError(f"未知字段: {', '.join(sorted(unknown))}")

        item = self.get_item(item_id)
        old_image = item.image_filename
        tag_names = changes.pop("tag_names", None)

        if "category_id" in changes and changes["category_id"] != item.category_id:
            changes.setdefault("subcategory_id", None)
        if "location_id" in changes and changes["location_id"] != item.location_id:
            changes.setdefault("sublocation_id", None)
        if "name" in changes and not (changes["name"] or "").strip():
            del changes["name"]

        for key, value in changes.items():
            setattr(item, key, value)
        item.original_currency = Currency(item.original_currency)
        item.source_type = SourceType(item.source_type)
        item.normalized_price = to_usd(item.unit_price, item.original_currency, rate)
        item.updated_at = datetime.now()

        self._validate(item)

        conn = self._get_conn()
        try:
            assignments = ", ".join(f"{c} = :{c}" for c in _COLUMNS if c != "id")
            conn.execute(f"UPDATE items SET {assignments} WHERE id = :id", _item_params(item))
            if tag_names is not None:
                conn.execute("DELETE FROM item_tags WHERE item_id = ?", (item.id,))
                item.tags = resolve_tags(conn, tag_names)
                _link_tags(conn, item.id, item.tags)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise

        if old_image and old_image != item.image_filename:
            self._release_image(old_image)
        return item

    def delete_item(self, item_id: str) -> None:
        """Delete an item and its stored photo."""
        item = self.get_item(item_id)
        conn = self._get_conn()
        conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
        conn.commit()
        if item.image_filename:
            self._release_image(item.image_filename)
        logger.info("删除物品: %s", item.name)

    def mark_restocked(
        self, item_id: str, added_quantity: float = 0.0, today: date | None = None
    ) -> Item:
        """Record a restock: add quantity, reset the interval clock and the reminder flag."""
        if added_quantity < 0:
            raise ValidationError("补货数量不能为负数")
        item = self.get_item(item_id)
        conn = self._get_conn()
        conn.execute(
            """UPDATE items
               SET quantity = quantity + ?,
                   last_restocked_date = ?,
                   is_restock_notified = 0,
                   updated_at = ?
               WHERE id = ?""",
            (
                added_quantity,
                (today or date.today()).isoformat(),
                datetime.now().isoformat(),
                item.id,
            ),
        )
        conn.commit()
        return self.get_item(item_id)

    def set_restock_notified(self, item_id: str, notified: bool = True) -> None:
        conn = self._get_conn()
        conn.execute(
            "UPDATE items SET is_restock_notified = ? WHERE id = ?",
            (int(notified), item_id),
        )
        conn.commit()

    def _release_image(self, filename: str) -> None:
        if self._image_store is not None:
            self._image_store.delete(filename)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> Item:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            raise NotFoundError("物品", item_id)
        return _row_to_item(row, self._tags_for([item_id]).get(item_id, []))

    def list_items(
        self,
        *,
        category_id: str | None = None,
        subcategory_id: str | None = None,
        uncategorized: bool = False,
        include_archived: bool = True,
        order_by: str = "created_at",
    ) -> list[Item]:
        """List items, newest first by default.

        Args:
            category_id: Only items of this category.
            subcategory_id: Only items of this subcategory.
            uncategorized: With ``category_id``, only items that have no
                subcategory.
            include_archived: Include archived items.
            order_by: "created_at", "normalized_price" or "name".
        """
        if order_by not in _ORDERINGS:
            raise ValueError(f"unsupported ordering: {order_by!r}")

        clauses: list[str] = []
        params: list[Any] = []
        if category_id is not None:
            clauses.append("category_id = ?")
            params.append(category_id)
        if subcategory_id is not None:
            clauses.append("subcategory_id = ?")
            params.append(subcategory_id)
        if uncategorized:
            clauses.append("subcategory_id IS NULL")
        if not include_archived:
            clauses.append("is_archived = 0")

        sql = "SELECT * FROM items"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {_ORDERINGS[order_by]}"

        rows = self._get_conn().execute(sql, params).fetchall()
        tags = self._tags_for([r["id"] for r in rows])
        return [_row_to_item(r, tags.get(r["id"], [])) for r in rows]

    def list_needing_restock(self, today: date | None = None) -> list[Item]:
        return [
            i for i in self.list_items(include_archived=False)
            if i.needs_restock_on(today)
        ]

    def list_expiring(self, today: date | None = None, warning_days: int = 7) -> list[Item]:
        """Active items that are expired or inside the warning window."""
        return [
            i for i in self.list_items(include_archived=False)
            if i.expired_on(today) or i.expiring_soon_on(today, warning_days)
        ]

    def _tags_for(self, item_ids: list[str]) -> dict[str, list[Tag]]:
        if not item_ids:
            return {}
        conn = self._get_conn()
        result: dict[str, list[Tag]] = {}
        # Stay under SQLite's bound-parameter limit
        for start in range(0, len(item_ids), 500):
            chunk = item_ids[start:start + 500]
            rows = conn.execute(
                f"""SELECT it.item_id, t.id, t.name
                    FROM item_tags it JOIN tags t ON t.id = it.tag_id
                    WHERE it.item_id IN ({', '.join('?' * len(chunk))})
                    ORDER BY t.name""",
                chunk,
            ).fetchall()
            for r in rows:
                result.setdefault(r["item_id"], []).append(Tag(id=r["id"], name=r["name"]))
        return result


def _link_tags(conn: sqlite3.Connection, item_id: str, tags: list[Tag]) -> None:
    conn.executemany(
        "INSERT OR IGNORE INTO item_tags (item_id, tag_id) VALUES (?, ?)",
        [(item_id, t.id) for t in tags],
    )


def _item_params(item: Item) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for column in _COLUMNS:
        value = getattr(item, column)
        if column in _DATE_FIELDS:
            value = value.isoformat() if value is not None else None
        elif column in _BOOL_FIELDS:
            value = int(value)
        elif column in ("created_at", "updated_at"):
            value = value.isoformat()
        elif column in ("original_currency", "source_type"):
            value = value.value
        params[column] = value
    return params


def _row_to_item(row: sqlite3.Row, tags: list[Tag]) -> Item:
    values: dict[str, Any] = {}
    for column in _COLUMNS:
        value = row[column]
        if column in _DATE_FIELDS:
            value = date.fromisoformat(value) if value else None
        elif column in _BOOL_FIELDS:
            value = bool(value)
        elif column in ("created_at", "updated_at"):
            value = datetime.fromisoformat(value)
        values[column] = value
    return Item(tags=tags, **values)
