"""SQLite storage for the taxonomy, tags, items and settings."""

from .items import ItemDB
from .schema import ensure_schema
from .settings import SettingsDB
from .tags import TagDB, resolve_tags
from .taxonomy import TaxonomyDB

__all__ = [
    "ItemDB",
    "SettingsDB",
    "TagDB",
    "TaxonomyDB",
    "ensure_schema",
    "resolve_tags",
]
