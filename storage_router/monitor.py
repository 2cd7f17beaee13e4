"""
Background loop that keeps backend sizes fresh and triggers failover.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

from storage_router.policy import FailoverPolicy
from storage_router.tasks import spawn_background

logger = logging.getLogger(__name__)


class MonitorLoop:
    """
    Periodic ticker plus two one-shot kicks shortly after startup.

    A freshly started process has no size history, so a populate pass runs
    after ``populate_delay_seconds`` and a full failover check after
    ``evaluate_delay_seconds``; afterwards the policy runs every
    ``interval_seconds``.
    """

    def __init__(
        self,
        policy: FailoverPolicy,
        interval_seconds: float,
        *,
        populate_delay_seconds: float = 5.0,
        evaluate_delay_seconds: float = 10.0,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.policy = policy
        self.interval_seconds = interval_seconds
        self.populate_delay_seconds = populate_delay_seconds
        self.evaluate_delay_seconds = evaluate_delay_seconds
        self._tasks: list[asyncio.Task] = []
        self._ticker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    async def _after(self, delay: float, step: Callable[[], Awaitable[bool]]) -> None:
        await asyncio.sleep(delay)
        await step()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.policy.tick()

    def start(self) -> None:
        if self.running:
            return
        logger.info(
            "Starting size monitor (every %.0fs)", self.interval_seconds
        )
        self._tasks = [
            spawn_background(
                self._after(self.populate_delay_seconds, self.policy.populate),
                name="db-size-populate",
            ),
            spawn_background(
                self._after(self.evaluate_delay_seconds, self.policy.tick),
                name="db-size-first-check",
            ),
        ]
        self._ticker = spawn_background(self._run(), name="db-size-monitor")
        self._tasks.append(self._ticker)

    async def stop(self) -> None:
        tasks, self._tasks, self._ticker = self._tasks, [], None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.info("Size monitor stopped")
