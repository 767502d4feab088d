"""Category/subcategory and location/sublocation storage.

Both hierarchies are exactly two levels deep: a ``Subcategory`` row always
references one ``Category`` and nothing references a subcategory as a
parent. Locations mirror the same shape but are optional on items.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..errors import NotFoundError, RestrictedDeletionError, ValidationError
from ..models import (
    DEFAULT_CATEGORIES,
    DEFAULT_LOCATIONS,
    Category,
    Location,
    Subcategory,
    Sublocation,
)
from .schema import ensure_schema

logger = logging.getLogger(__name__)


def _clean_name(name: str) -> str:
    return name.strip()


def _move_id(ids: list[str], node_id: str, new_index: int) -> list[str]:
    """Return ``ids`` with ``node_id`` moved to ``new_index`` (clamped)."""
    reordered = [i for i in ids if i != node_id]
    new_index = max(0, min(new_index, len(reordered)))
    reordered.insert(new_index, node_id)
    return reordered


class TaxonomyDB:
    """Manages the categories, subcategories, locations and sublocations tables."""

    def __init__(self, db_path: str | Path = "~/.config/itemmaster/items.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _next_sort_order(self, table: str, parent_col: str | None = None,
                         parent_id: str | None = None) -> int:
        conn = self._get_conn()
        if parent_col is None:
            row = conn.execute(f"SELECT MAX(sort_order) AS m FROM {table}").fetchone()
        else:
            row = conn.execute(
                f"SELECT MAX(sort_order) AS m FROM {table} WHERE {parent_col} = ?",
                (parent_id,),
            ).fetchone()
        return 0 if row["m"] is None else row["m"] + 1

    def _require(self, table: str, kind: str, node_id: str) -> sqlite3.Row:
        row = self._get_conn().execute(
            f"SELECT * FROM {table} WHERE id = ?", (node_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(kind, node_id)
        return row

    def _rename(self, table: str, kind: str, node_id: str, new_name: str) -> bool:
        """Rename a node. Blank names are ignored and leave the old name."""
        self._require(table, kind, node_id)
        trimmed = _clean_name(new_name)
        if not trimmed:
            logger.debug("空白名称，保持%s %s 原名不变", kind, node_id)
            return False
        conn = self._get_conn()
        conn.execute(f"UPDATE {table} SET name = ? WHERE id = ?", (trimmed, node_id))
        conn.commit()
        logger.info("%s %s 重命名为 %s", kind, node_id, trimmed)
        return True

    def _move(self, table: str, kind: str, node_id: str, new_index: int,
              parent_col: str | None = None) -> None:
        """Move a node and renumber its siblings 0..n-1 in display order."""
        row = self._require(table, kind, node_id)
        conn = self._get_conn()
        if parent_col is None:
            rows = conn.execute(
                f"SELECT id FROM {table} ORDER BY sort_order, rowid"
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT id FROM {table} WHERE {parent_col} = ? ORDER BY sort_order, rowid",
                (row[parent_col],),
            ).fetchall()
        ordered = _move_id([r["id"] for r in rows], node_id, new_index)
        conn.executemany(
            f"UPDATE {table} SET sort_order = ? WHERE id = ?",
            [(index, ident) for index, ident in enumerate(ordered)],
        )
        conn.commit()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def list_categories(self) -> list[Category]:
        """Return all categories in display order, each with its subcategories."""
        conn = self._get_conn()
        cat_rows = conn.execute(
            "SELECT * FROM categories ORDER BY sort_order, rowid"
        ).fetchall()
        sub_rows = conn.execute(
            "SELECT * FROM subcategories ORDER BY sort_order, rowid"
        ).fetchall()

        categories = [_row_to_category(r) for r in cat_rows]
        by_id = {c.id: c for c in categories}
        for r in sub_rows:
            parent = by_id.get(r["category_id"])
            if parent is not None:
                parent.subcategories.append(_row_to_subcategory(r))
        return categories

    def get_category(self, category_id: str) -> Category:
        row = self._require("categories", "分类", category_id)
        category = _row_to_category(row)
        category.subcategories = self.list_subcategories(category_id)
        return category

    def find_category(self, name: str) -> Category | None:
        """Exact, case-sensitive lookup by name."""
        row = self._get_conn().execute(
            "SELECT id FROM categories WHERE name = ? ORDER BY sort_order, rowid",
            (name,),
        ).fetchone()
        return self.get_category(row["id"]) if row else None

    def create_category(
        self,
        name: str,
        sort_order: int | None = None,
        *,
        is_default: bool = False,
        icon_name: str | None = None,
    ) -> Category:
        """Append a new category.

        Raises:
            ValidationError: If the name is blank.
        """
        trimmed = _clean_name(name)
        if not trimmed:
            raise ValidationError("分类名称不能为空")
        if sort_order is None:
            sort_order = self._next_sort_order("categories")

        category = Category(
            name=trimmed, sort_order=sort_order, is_default=is_default,
            icon_name=icon_name,
        )
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO categories
               (id, name, icon_name, is_default, sort_order, uncategorized_sort_order)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                category.id,
                category.name,
                category.icon_name,
                int(category.is_default),
                category.sort_order,
                category.uncategorized_sort_order,
            ),
        )
        conn.commit()
        logger.info("新建分类: %s", category.name)
        return category

    def rename_category(self, category_id: str, new_name: str) -> bool:
        return self._rename("categories", "分类", category_id, new_name)

    def move_category(self, category_id: str, new_index: int) -> None:
        self._move("categories", "分类", category_id, new_index)

    def category_item_count(self, category_id: str) -> int:
        row = self._get_conn().execute(
            "SELECT COUNT(*) AS n FROM items WHERE category_id = ?", (category_id,)
        ).fetchone()
        return row["n"]

    def delete_category(self, category_id: str) -> None:
        """Delete an empty category together with its subcategories.

        Every item of a subcategory also belongs to the parent category, so an
        empty category implies all of its subcategories are empty too.

        Raises:
            RestrictedDeletionError: If any item still belongs to the category.
        """
        row = self._require("categories", "分类", category_id)
        count = self.category_item_count(category_id)
        if count:
            logger.warning("拒绝删除分类 %s: 仍有 %d 件物品", row["name"], count)
            raise RestrictedDeletionError("分类", row["name"], count)

        conn = self._get_conn()
        conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        conn.commit()
        logger.info("删除分类: %s", row["name"])

    # ------------------------------------------------------------------
    # Subcategories
    # ------------------------------------------------------------------

    def list_subcategories(self, category_id: str) -> list[Subcategory]:
        rows = self._get_conn().execute(
            "SELECT * FROM subcategories WHERE category_id = ? ORDER BY sort_order, rowid",
            (category_id,),
        ).fetchall()
        return [_row_to_subcategory(r) for r in rows]

    def get_subcategory(self, subcategory_id: str) -> Subcategory:
        return _row_to_subcategory(
            self._require("subcategories", "二级分类", subcategory_id)
        )

    def create_subcategory(
        self,
        category_id: str,
        name: str,
        sort_order: int | None = None,
        *,
        icon_name: str | None = None,
    ) -> Subcategory:
        """Append a subcategory under an existing category."""
        self._require("categories", "分类", category_id)
        trimmed = _clean_name(name)
        if not trimmed:
            raise ValidationError("二级分类名称不能为空")
        if sort_order is None:
            sort_order = self._next_sort_order("subcategories", "category_id", category_id)

        subcategory = Subcategory(
            name=trimmed, category_id=category_id, sort_order=sort_order,
            icon_name=icon_name,
        )
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO subcategories (id, name, icon_name, sort_order, category_id)
               VALUES (?, ?, ?, ?, ?)""",
            (
                subcategory.id,
                subcategory.name,
                subcategory.icon_name,
                subcategory.sort_order,
                subcategory.category_id,
            ),
        )
        conn.commit()
        logger.info("新建二级分类: %s", subcategory.name)
        return subcategory

    def rename_subcategory(self, subcategory_id: str, new_name: str) -> bool:
        return self._rename("subcategories", "二级分类", subcategory_id, new_name)

    def move_subcategory(self, subcategory_id: str, new_index: int) -> None:
        self._move("subcategories", "二级分类", subcategory_id, new_index, "category_id")

    def set_uncategorized_position(self, category_id: str, position: int) -> None:
        """Place the "(未分类)" bucket at ``position`` among the subcategories."""
        self._require("categories", "分类", category_id)
        count = len(self.list_subcategories(category_id))
        position = max(0, min(position, count))
        conn = self._get_conn()
        conn.execute(
            "UPDATE categories SET uncategorized_sort_order = ? WHERE id = ?",
            (position, category_id),
        )
        conn.commit()

    def subcategory_item_count(self, subcategory_id: str) -> int:
        row = self._get_conn().execute(
            "SELECT COUNT(*) AS n FROM items WHERE subcategory_id = ?", (subcategory_id,)
        ).fetchone()
        return row["n"]

    def delete_subcategory(self, subcategory_id: str) -> None:
        """Delete an empty subcategory.

        Raises:
            RestrictedDeletionError: If any item still belongs to it.
        """
        row = self._require("subcategories", "二级分类", subcategory_id)
        count = self.subcategory_item_count(subcategory_id)
        if count:
            logger.warning("拒绝删除二级分类 %s: 仍有 %d 件物品", row["name"], count)
            raise RestrictedDeletionError("二级分类", row["name"], count)

        conn = self._get_conn()
        conn.execute("DELETE FROM subcategories WHERE id = ?", (subcategory_id,))
        conn.commit()
        logger.info("删除二级分类: %s", row["name"])

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def list_locations(self) -> list[Location]:
        conn = self._get_conn()
        loc_rows = conn.execute(
            "SELECT * FROM locations ORDER BY sort_order, rowid"
        ).fetchall()
        sub_rows = conn.execute(
            "SELECT * FROM sublocations ORDER BY sort_order, rowid"
        ).fetchall()

        locations = [_row_to_location(r) for r in loc_rows]
        by_id = {loc.id: loc for loc in locations}
        for r in sub_rows:
            parent = by_id.get(r["location_id"])
            if parent is not None:
                parent.sublocations.append(_row_to_sublocation(r))
        return locations

    def get_location(self, location_id: str) -> Location:
        location = _row_to_location(self._require("locations", "位置", location_id))
        rows = self._get_conn().execute(
            "SELECT * FROM sublocations WHERE location_id = ? ORDER BY sort_order, rowid",
            (location_id,),
        ).fetchall()
        location.sublocations = [_row_to_sublocation(r) for r in rows]
        return location

    def get_sublocation(self, sublocation_id: str) -> Sublocation:
        return _row_to_sublocation(
            self._require("sublocations", "二级位置", sublocation_id)
        )

    def find_location(self, name: str) -> Location | None:
        row = self._get_conn().execute(
            "SELECT id FROM locations WHERE name = ? ORDER BY sort_order, rowid",
            (name,),
        ).fetchone()
        return self.get_location(row["id"]) if row else None

    def create_location(
        self,
        name: str,
        sort_order: int | None = None,
        *,
        is_default: bool = False,
        icon_name: str | None = None,
        coordinates_data: str | None = None,
    ) -> Location:
        trimmed = _clean_name(name)
        if not trimmed:
            raise ValidationError("位置名称不能为空")
        if sort_order is None:
            sort_order = self._next_sort_order("locations")

        location = Location(
            name=trimmed, sort_order=sort_order, is_default=is_default,
            icon_name=icon_name, coordinates_data=coordinates_data,
        )
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO locations
               (id, name, icon_name, coordinates_data, is_default, sort_order)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                location.id,
                location.name,
                location.icon_name,
                location.coordinates_data,
                int(location.is_default),
                location.sort_order,
            ),
        )
        conn.commit()
        logger.info("新建位置: %s", location.name)
        return location

    def rename_location(self, location_id: str, new_name: str) -> bool:
        return self._rename("locations", "位置", location_id, new_name)

    def move_location(self, location_id: str, new_index: int) -> None:
        self._move("locations", "位置", location_id, new_index)

    def delete_location(self, location_id: str) -> None:
        """Delete a location and its sublocations; items keep existing unplaced."""
        row = self._require("locations", "位置", location_id)
        conn = self._get_conn()
        # sublocation_id is cleared by the cascade, location_id by SET NULL
        conn.execute("DELETE FROM locations WHERE id = ?", (location_id,))
        conn.commit()
        logger.info("删除位置: %s", row["name"])

    def create_sublocation(
        self,
        location_id: str,
        name: str,
        sort_order: int | None = None,
        *,
        icon_name: str | None = None,
        coordinates_data: str | None = None,
    ) -> Sublocation:
        self._require("locations", "位置", location_id)
        trimmed = _clean_name(name)
        if not trimmed:
            raise ValidationError("二级位置名称不能为空")
        if sort_order is None:
            sort_order = self._next_sort_order("sublocations", "location_id", location_id)

        sublocation = Sublocation(
            name=trimmed, location_id=location_id, sort_order=sort_order,
            icon_name=icon_name, coordinates_data=coordinates_data,
        )
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO sublocations
               (id, name, icon_name, coordinates_data, sort_order, location_id)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                sublocation.id,
                sublocation.name,
                sublocation.icon_name,
                sublocation.coordinates_data,
                sublocation.sort_order,
                sublocation.location_id,
            ),
        )
        conn.commit()
        logger.info("新建二级位置: %s", sublocation.name)
        return sublocation

    def rename_sublocation(self, sublocation_id: str, new_name: str) -> bool:
        return self._rename("sublocations", "二级位置", sublocation_id, new_name)

    def move_sublocation(self, sublocation_id: str, new_index: int) -> None:
        self._move("sublocations", "二级位置", sublocation_id, new_index, "location_id")

    def delete_sublocation(self, sublocation_id: str) -> None:
        row = self._require("sublocations", "二级位置", sublocation_id)
        conn = self._get_conn()
        conn.execute("DELETE FROM sublocations WHERE id = ?", (sublocation_id,))
        conn.commit()
        logger.info("删除二级位置: %s", row["name"])

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def seed_defaults(self) -> bool:
        """Insert the default categories and locations into an empty store.

        Returns:
            True if anything was seeded.
        """
        conn = self._get_conn()
        seeded = False
        if conn.execute("SELECT COUNT(*) AS n FROM categories").fetchone()["n"] == 0:
            for name in DEFAULT_CATEGORIES:
                self.create_category(name, is_default=True)
            seeded = True
        if conn.execute("SELECT COUNT(*) AS n FROM locations").fetchone()["n"] == 0:
            for name in DEFAULT_LOCATIONS:
                self.create_location(name, is_default=True)
            seeded = True
        return seeded


def _row_to_category(row: sqlite3.Row) -> Category:
    return Category(
        id=row["id"],
        name=row["name"],
        icon_name=row["icon_name"],
        is_default=bool(row["is_default"]),
        sort_order=row["sort_order"],
        uncategorized_sort_order=row["uncategorized_sort_order"],
    )


def _row_to_subcategory(row: sqlite3.Row) -> Subcategory:
    return Subcategory(
        id=row["id"],
        name=row["name"],
        icon_name=row["icon_name"],
        sort_order=row["sort_order"],
        category_id=row["category_id"],
    )


def _row_to_location(row: sqlite3.Row) -> Location:
    return Location(
        id=row["id"],
        name=row["name"],
        icon_name=row["icon_name"],
        coordinates_data=row["coordinates_data"],
        is_default=bool(row["is_default"]),
        sort_order=row["sort_order"],
    )


def _row_to_sublocation(row: sqlite3.Row) -> Sublocation:
    return Sublocation(
        id=row["id"],
        name=row["name"],
        icon_name=row["icon_name"],
        coordinates_data=row["coordinates_data"],
        sort_order=row["sort_order"],
        location_id=row["location_id"],
    )
