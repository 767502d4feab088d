"""Household item catalogue: categories, locations, prices, expiry and restocking."""

from .config import AppConfig, load_config
from .currency import convert, format_amount
from .db import ItemDB, SettingsDB, TagDB, TaxonomyDB
from .errors import InventoryError, NotFoundError, RestrictedDeletionError, ValidationError
from .images import ImageStore
from .models import (
    Category,
    Currency,
    DisplaySettings,
    Item,
    Location,
    Metric,
    ParsedReceipt,
    SortKey,
    Subcategory,
    Sublocation,
    Tag,
)
from .receipt import ReceiptScanError, ReceiptScanner, create_scanner

__all__ = [
    "AppConfig",
    "load_config",
    "convert",
    "format_amount",
    "ItemDB",
    "SettingsDB",
    "TagDB",
    "TaxonomyDB",
    "ImageStore",
    "InventoryError",
    "NotFoundError",
    "RestrictedDeletionError",
    "ValidationError",
    "Category",
    "Subcategory",
    "Location",
    "Sublocation",
    "Tag",
    "Item",
    "Currency",
    "DisplaySettings",
    "Metric",
    "SortKey",
    "ParsedReceipt",
    "ReceiptScanner",
    "ReceiptScanError",
    "create_scanner",
]
