"""Tests for ImageStore."""

import pytest


def test_save_and_load(images):
    filename = images.save(b"\xff\xd8data", suffix=".png")
    assert filename.endswith(".png")
    assert filename[:-4] == filename[:-4].upper()
    assert images.load(filename) == b"\xff\xd8data"
    assert (images.image_dir / filename).exists()


def test_filenames_are_unique(images):
    assert images.save(b"a") != images.save(b"a")


def test_load_missing_returns_none(images):
    assert images.load("missing.jpg") is None


def test_delete_is_idempotent(images):
    filename = images.save(b"a")
    images.delete(filename)
    images.delete(filename)
    assert images.load(filename) is None


@pytest.mark.parametrize("name", ["", "../escape.jpg", "sub/dir.jpg"])
def test_rejects_path_components(images, name):
    with pytest.raises(ValueError):
        images.load(name)
