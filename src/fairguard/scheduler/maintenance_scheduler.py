"""Periodic maintenance sweeps.

Runs a fixed list of named jobs on an interval: ledger expiry cleanup,
pending-warn cache cleanup, stale confirmation sweeps and activity pruning.
A failing job is logged and does not stop the others or the loop.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Tuple

from fairguard.util.logger import get_logger

logger = get_logger("maintenance_scheduler")

Job = Callable[[], Awaitable[Any]]


class MaintenanceScheduler:
    """
    Reusable scheduler for periodic maintenance jobs.

    Args:
        jobs: ``(name, coroutine function)`` pairs, run in order each sweep.
        get_interval: Callable returning the interval in seconds (called at start).
        name: Human-readable name for logging.
    """

    def __init__(
        self,
        jobs: List[Tuple[str, Job]],
        get_interval: Callable[[], float],
        name: str = "MAINTENANCE",
    ) -> None:
        self._jobs = list(jobs)
        self._get_interval = get_interval
        self._name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Dict[str, Any]:
        """Run every job once; returns each job's result (the exception for failed jobs)."""
        results: Dict[str, Any] = {}
        for job_name, job in self._jobs:
            try:
                results[job_name] = await job()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[%s] Job %s failed: %s", self._name, job_name, exc)
                results[job_name] = exc
        return results

    async def _run_loop(self, interval: float) -> None:
        """Infinite loop: run all jobs, sleep, repeat."""
        logger.info("[%s] Starting periodic sweeps (interval=%.1fs, %d jobs)", self._name, interval, len(self._jobs))
        try:
            while True:
                await self.run_once()
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("[%s] Periodic sweeps cancelled", self._name)
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.warning("[%s] Sweep task already running", self._name)
            return
        interval = self._get_interval()
        self._task = asyncio.create_task(self._run_loop(interval), name=f"fairguard-{self._name.lower()}")

    async def shutdown(self) -> None:
        """Stop the task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[%s] Scheduler shutdown complete", self._name)
