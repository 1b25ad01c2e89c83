"""
Periodic demotion of expired premium users.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Set

from shared.logging import correlation, get_logger
from shared.metrics import MetricsCollector

if TYPE_CHECKING:
    from ..system import EntitlementSystem


@dataclass
class SweepReport:
    """Counts from one expiry sweep."""
    checked: int = 0
    demoted: int = 0
    failed: int = 0


class ExpirySweeper:
    """Runs ``check_expirations`` on a fixed interval.

    Every interval a new sweep task is started whether or not the previous
    one has finished. ``stop()`` ends the timer only; sweeps already running
    are left to complete.
    """

    def __init__(
        self,
        system: "EntitlementSystem",
        interval_seconds: float = 60.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.system = system
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self.logger = get_logger("premium.expiry")

        self.sweep_task: Optional[asyncio.Task] = None
        self.running = False
        self._ticks: Set[asyncio.Task] = set()

    async def start(self):
        """Start the sweep timer. Calling it again while running is a no-op."""
        if self.running:
            return
        self.running = True
        self.sweep_task = asyncio.create_task(self._sweep_loop())
        self.logger.info("Expiry sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the sweep timer."""
        if not self.running and self.sweep_task is None:
            return
        self.running = False
        if self.sweep_task:
            self.sweep_task.cancel()
            try:
                await self.sweep_task
            except asyncio.CancelledError:
                pass
            self.sweep_task = None

        self.logger.info("Expiry sweeper stopped", in_flight=len(self._ticks))

    @property
    def in_flight(self) -> int:
        """Number of sweeps currently running."""
        return len(self._ticks)

    async def _sweep_loop(self):
        """Start one sweep per interval."""
        while self.running:
            try:
                await asyncio.sleep(self.interval_seconds)

                tick = asyncio.create_task(self.check_expirations())
                self._ticks.add(tick)
                tick.add_done_callback(self._ticks.discard)

            except asyncio.CancelledError:
                break

    async def check_expirations(self) -> SweepReport:
        """Demote every user whose subscription has lapsed.

        A failure for one user is logged and counted; the sweep moves on to
        the next user. Nothing raises out of a sweep. Log lines from one
        sweep share a correlation id.
        """
        with correlation():
            return await self._sweep()

    async def _sweep(self) -> SweepReport:
        started = time.perf_counter()
        report = SweepReport()

        try:
            expired_users = await self.system.get_expired_users()
        except Exception as e:
            self.logger.error("Failed to load expired users", error=str(e))
            self._record("error", started, report)
            return report

        report.checked = len(expired_users)
        if expired_users:
            self.logger.info("Processing expired users", count=len(expired_users))

        for user in expired_users:
            try:
                if await self.system.demote_expired_user(user.id):
                    report.demoted += 1
            except Exception as e:
                report.failed += 1
                self.logger.error(
                    "Failed to demote expired user",
                    user_id=user.id,
                    tier=user.tier,
                    error=str(e)
                )

        status = "partial" if report.failed else "success"
        self._record(status, started, report)
        self.logger.info(
            "Expiry sweep finished",
            checked=report.checked,
            demoted=report.demoted,
            failed=report.failed
        )
        return report

    def _record(self, status: str, started: float, report: SweepReport) -> None:
        if self.metrics:
            self.metrics.record_expiry_sweep(status, time.perf_counter() - started, report.demoted)
