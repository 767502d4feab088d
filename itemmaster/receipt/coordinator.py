"""Keeps at most one receipt scan in flight."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from ..models import ParsedReceipt
from . import ReceiptScanner

logger = logging.getLogger(__name__)


class ScanCoordinator:
    """Runs scans one at a time; a new scan cancels the one still running.

    The caller waiting on a superseded scan receives
    :class:`asyncio.CancelledError`, so stale results are never applied.
    """

    def __init__(self, scanner: ReceiptScanner) -> None:
        self._scanner = scanner
        self._task: asyncio.Task | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def scan(
        self, image_path: str | Path, category_context: str = ""
    ) -> list[ParsedReceipt]:
        self.cancel()
        task = asyncio.ensure_future(self._scanner.scan(image_path, category_context))
        self._task = task
        try:
            return await task
        finally:
            if self._task is task:
                self._task = None

    def cancel(self) -> bool:
        """Cancel the outstanding scan, if any. Returns True if one was cancelled."""
        if not self.in_flight:
            return False
        self._task.cancel()
        logger.info("已取消进行中的识别请求")
        return True
