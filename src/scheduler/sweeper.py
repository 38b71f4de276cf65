"""
Lifecycle sweeper

Periodic cleanup of state that outlives its usefulness:
- expired or undecodable conversation contexts in Redis
- stale CAS verdicts in Redis
- expired user_states rows
- CAS audit rows older than the retention period

Each stage is independent; a failing stage is logged and the tick moves on.
"""

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel, Field

from src.exceptions import SwingBuddyError

logger = logging.getLogger(__name__)


class SweepReport(BaseModel):
    """Counts from a single sweeper tick"""

    contexts_removed: int = 0
    cas_cache_removed: int = 0
    user_states_removed: int = 0
    cas_checks_removed: int = 0
    failed_stages: list[str] = Field(default_factory=list)


class LifecycleSweeper:
    """
    Runs ``run_once`` every ``interval`` seconds in a background task.

    Example:
        sweeper = LifecycleSweeper(store, antispam, admin_repo, interval=3600)
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self,
        store,
        antispam,
        admin_repo,
        interval: float,
        retention_days: int = 30
    ):
        self.store = store
        self.antispam = antispam
        self.admin_repo = admin_repo
        self.interval = interval
        self.retention_days = retention_days
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_container(cls, services) -> "LifecycleSweeper":
        return cls(
            store=services.store,
            antispam=services.antispam,
            admin_repo=services.admin,
            interval=services.settings.cleanup_interval,
            retention_days=services.settings.cas.log_retention_days,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.warning("Sweeper already running")
            return
        logger.info(f"Starting lifecycle sweeper (every {self.interval}s)")
        self._task = asyncio.create_task(self._loop(), name="lifecycle-sweeper")

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Lifecycle sweeper stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Sweeper tick failed")

    async def _stage(self, report: SweepReport, name: str, coro) -> int:
        try:
            return await coro
        except SwingBuddyError as e:
            report.failed_stages.append(name)
            logger.error(f"Sweep stage '{name}' failed: {e.message}")
            return 0

    async def run_once(self) -> SweepReport:
        """Run every cleanup stage once"""
        report = SweepReport()

        report.contexts_removed = await self._stage(report, "contexts", self._sweep_contexts())
        report.cas_cache_removed = await self._stage(report, "cas_cache", self.antispam.sweep_cache())
        report.user_states_removed = await self._stage(
            report, "user_states", self.admin_repo.clean_expired_states()
        )
        report.cas_checks_removed = await self._stage(
            report, "cas_checks", self.admin_repo.cleanup_old_cas_checks(self.retention_days)
        )

        logger.info(
            f"🧹 Sweep done: contexts={report.contexts_removed} "
            f"cas_cache={report.cas_cache_removed} user_states={report.user_states_removed} "
            f"cas_checks={report.cas_checks_removed}"
            + (f" failed={report.failed_stages}" if report.failed_stages else "")
        )
        return report

    async def _sweep_contexts(self) -> int:
        result = await self.store.sweep()
        return result.removed
