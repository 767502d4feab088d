"""Tag storage. Tag names are the natural dedup key."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..models import Tag
from .schema import ensure_schema

logger = logging.getLogger(__name__)


def resolve_tags(conn: sqlite3.Connection, names: list[str]) -> list[Tag]:
    """Map tag names to Tag rows, creating the missing ones.

    Names are trimmed; blanks and repeats are dropped. Matching is exact, so
    "eBay" and "ebay" are two tags. The caller commits.
    """
    tags: list[Tag] = []
    seen: set[str] = set()
    for raw in names:
        name = raw.strip()
        if not name or name in seen:
            continue
        seen.add(name)

        row = conn.execute("SELECT id, name FROM tags WHERE name = ?", (name,)).fetchone()
        if row is not None:
            tags.append(Tag(id=row["id"], name=row["name"]))
            continue

        tag = Tag(name=name)
        conn.execute("INSERT INTO tags (id, name) VALUES (?, ?)", (tag.id, tag.name))
        logger.debug("新建标签: %s", name)
        tags.append(tag)
    return tags


class TagDB:
    """Manages the tags table."""

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

    def resolve(self, names: list[str]) -> list[Tag]:
        """Return one Tag per distinct name, reusing existing tags."""
        conn = self._get_conn()
        tags = resolve_tags(conn, names)
        conn.commit()
        return tags

    def find(self, name: str) -> Tag | None:
        row = self._get_conn().execute(
            "SELECT id, name FROM tags WHERE name = ?", (name,)
        ).fetchone()
        return Tag(id=row["id"], name=row["name"]) if row else None

    def list_tags(self) -> list[Tag]:
        rows = self._get_conn().execute("SELECT id, name FROM tags ORDER BY name").fetchall()
        return [Tag(id=r["id"], name=r["name"]) for r in rows]

    def prune_unused(self) -> int:
        """Delete tags no item references.

        Returns:
            Number of tags removed.
        """
        conn = self._get_conn()
        cur = conn.execute(
            "DELETE FROM tags WHERE id NOT IN (SELECT DISTINCT tag_id FROM item_tags)"
        )
        conn.commit()
        if cur.rowcount:
            logger.info("清理未使用标签 %d 个", cur.rowcount)
        return cur.rowcount
