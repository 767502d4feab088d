"""Item photo storage on the local filesystem."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class ImageStore:
    """Stores item photos as uniquely named files under one directory."""

    def __init__(self, image_dir: str | Path = "~/.config/itemmaster/images") -> None:
        self._image_dir = Path(image_dir).expanduser()

    @property
    def image_dir(self) -> Path:
        return self._image_dir

    def _path(self, filename: str) -> Path:
        if not filename or Path(filename).name != filename:
            raise ValueError(f"invalid image filename: {filename!r}")
        return self._image_dir / filename

    def save(self, data: bytes, suffix: str = ".jpg") -> str:
        """Write image bytes and return the generated filename."""
        self._image_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{str(uuid.uuid4()).upper()}{suffix}"
        self._path(filename).write_bytes(data)
        return filename

    def load(self, filename: str) -> bytes | None:
        path = self._path(filename)
        if not path.exists():
            return None
        return path.read_bytes()

    def delete(self, filename: str) -> None:
        """Remove a stored image. A file that is already gone is not an error."""
        try:
            self._path(filename).unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("图片删除失败: %s", filename, exc_info=True)
