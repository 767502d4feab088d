"""Domain errors raised by the inventory core."""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for recoverable inventory errors."""

    @property
    def message(self) -> str:
        return str(self)


class RestrictedDeletionError(InventoryError):
    """A category or subcategory still owns items and cannot be deleted."""

    def __init__(self, kind: str, name: str, item_count: int) -> None:
        self.kind = kind
        self.name = name
        self.item_count = item_count
        super().__init__(
            f"无法删除{kind}「{name}」: 仍有 {item_count} 件物品。"
            "请先将物品清空，然后再尝试删除。"
        )


class ValidationError(InventoryError):
    """An item or taxonomy write was rejected before touching the store."""


class NotFoundError(InventoryError):
    """Lookup of an unknown id."""

    def __init__(self, kind: str, ident: str) -> None:
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind}不存在: {ident}")
