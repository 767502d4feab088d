"""Scheduled expiry and restock checks."""

from __future__ import annotations

import logging
from datetime import date

from .db import ItemDB

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """Runs the periodic expiry / restock check.

    Uses APScheduler for cron-based scheduling.
    """

    def __init__(self, config, item_db: ItemDB | None = None) -> None:
        """Initialize scheduler with an AppConfig.

        Args:
            config: AppConfig instance.
            item_db: Store to check; by default one is opened per run from
                ``config.storage.db_path``.

        Raises:
            ImportError: If apscheduler is not installed.
        """
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.cron import CronTrigger
        except ImportError:
            raise ImportError(
                "需要 apscheduler: pip install 'itemmaster[scheduler]'"
            )

        self._config = config
        self._item_db = item_db
        self._scheduler = AsyncIOScheduler()
        self._CronTrigger = CronTrigger
        self._running = False

    def setup_jobs(self) -> None:
        """Register scheduled jobs based on config."""
        if not self._config.reminders.enabled:
            logger.info("提醒未启用")
            return

        trigger = self._parse_cron(self._config.reminders.schedule)
        self._scheduler.add_job(
            self._job_check_items,
            trigger=trigger,
            id="check_items",
            name="过期与补货检查",
            replace_existing=True,
        )
        logger.info("提醒任务登记: %s", self._config.reminders.schedule)

    def start(self) -> None:
        """Start the scheduler."""
        self.setup_jobs()
        self._scheduler.start()
        self._running = True
        logger.info("调度器启动")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("调度器停止")

    @property
    def running(self) -> bool:
        return self._running

    def get_jobs(self) -> list[dict]:
        """Return info about scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if job.next_run_time else None,
            })
        return jobs

    def _parse_cron(self, expr: str):
        """Parse a cron expression into a CronTrigger."""
        parts = expr.split()
        if len(parts) == 5:
            return self._CronTrigger(
                minute=parts[0],
                hour=parts[1],
                day=parts[2],
                month=parts[3],
                day_of_week=parts[4],
            )
        raise ValueError(f"无效的 cron 表达式: {expr}")

    def check_items(self, today: date | None = None) -> dict[str, list[str]]:
        """Collect expired, expiring and newly low-stock items.

        Restock items are reported once: they are flagged as notified and
        skipped on later runs until :meth:`ItemDB.mark_restocked` clears
        the flag.

        Returns:
            ``{"expired": [...], "expiring": [...], "restock": [...]}`` of
            item names.
        """
        db = self._item_db or ItemDB(self._config.storage.db_path)
        try:
            return run_check(
                db, today, self._config.display.expiry_warning_days
            )
        finally:
            if self._item_db is None:
                db.close()

    async def _job_check_items(self) -> None:
        logger.info("过期与补货检查执行中...")
        try:
            self.check_items()
        except Exception:
            logger.exception("过期与补货检查出错")


def run_check(
    item_db: ItemDB, today: date | None = None, warning_days: int = 7
) -> dict[str, list[str]]:
    """Run one expiry / restock check against ``item_db``."""
    today = today or date.today()
    summary: dict[str, list[str]] = {"expired": [], "expiring": [], "restock": []}

    for item in item_db.list_expiring(today, warning_days):
        if item.expired_on(today):
            summary["expired"].append(item.name)
        else:
            summary["expiring"].append(item.name)

    for item in item_db.list_needing_restock(today):
        if item.is_restock_notified:
            continue
        item_db.set_restock_notified(item.id)
        summary["restock"].append(item.name)

    if summary["expired"]:
        logger.warning("已过期 %d 件: %s", len(summary["expired"]), ", ".join(summary["expired"]))
    if summary["expiring"]:
        logger.info("即将过期 %d 件: %s", len(summary["expiring"]), ", ".join(summary["expiring"]))
    if summary["restock"]:
        logger.info("需要补货 %d 件: %s", len(summary["restock"]), ", ".join(summary["restock"]))
    return summary
