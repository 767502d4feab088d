"""Shared fixtures: a temporary database with the default taxonomy."""

import pytest

from itemmaster.db import ItemDB, SettingsDB, TagDB, TaxonomyDB
from itemmaster.images import ImageStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"


@pytest.fixture
def taxonomy(db_path):
    """TaxonomyDB seeded with the default categories and locations."""
    store = TaxonomyDB(db_path=db_path)
    store.seed_defaults()
    yield store
    store.close()


@pytest.fixture
def images(tmp_path):
    return ImageStore(tmp_path / "images")


@pytest.fixture
def items(db_path, taxonomy, images):
    store = ItemDB(db_path=db_path, image_store=images)
    yield store
    store.close()


@pytest.fixture
def tags(db_path):
    store = TagDB(db_path=db_path)
    yield store
    store.close()


@pytest.fixture
def settings(db_path):
    store = SettingsDB(db_path=db_path)
    yield store
    store.close()


@pytest.fixture
def food(taxonomy):
    """The seeded 食物 category with 零食 and 蔬菜 subcategories."""
    category = taxonomy.find_category("食物")
    taxonomy.create_subcategory(category.id, "零食")
    taxonomy.create_subcategory(category.id, "蔬菜")
    return taxonomy.get_category(category.id)
