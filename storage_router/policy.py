"""
Failover policy run by the monitor loop.
"""

from __future__ import annotations

import logging

from storage_router.errors import ConnectError, NoCandidateError
from storage_router.prober import format_size, probe_size
from storage_router.state import BackendState, CapacityThresholds, RouterState

logger = logging.getLogger(__name__)


class FailoverPolicy:
    """
    Decides when the active backend is full and which backend replaces it.

    Candidates are scanned in ascending index order and the first one with
    a known size below the limit wins (first fit, not best fit).
    """

    def __init__(self, state: RouterState, thresholds: CapacityThresholds):
        self.state = state
        self.thresholds = thresholds

    async def refresh_sizes(self) -> None:
        """Re-probe backends that already have an open handle."""
        active = self.state.active()
        for entry in self.state.backends:
            if entry.handle is None:
                continue
            if not entry.available and entry is not active:
                continue
            self.state.mark_probe(entry, await probe_size(entry.handle))

    def _fits(self, entry: BackendState) -> bool:
        return (
            entry.available
            and 0 <= entry.size_bytes < self.thresholds.limit_bytes
        )

    async def find_candidate(self) -> BackendState:
        active_index = self.state.active_index
        for entry in self.state.backends:
            if entry.index == active_index:
                continue
            if entry.handle is None:
                try:
                    await self.state.ensure_handle(entry)
                except ConnectError:
                    continue
            self.state.mark_probe(entry, await probe_size(entry.handle))
            if self._fits(entry):
                return entry
        raise NoCandidateError("All backends are unavailable or at capacity")

    async def evaluate(self) -> bool:
        """Apply the policy to the current sizes. Returns True if it switched."""
        active = self.state.active()
        if active is None:
            return False
        size = active.size_bytes
        if size < 0:
            logger.warning("Active backend %d size unknown; skipping check", active.index)
            return False
        if size < self.thresholds.warn_bytes:
            logger.debug("Active backend %d at %s", active.index, format_size(size))
            return False
        if size < self.thresholds.limit_bytes:
            logger.warning(
                "Active backend %d nearing capacity: %s of %s",
                active.index,
                format_size(size),
                format_size(self.thresholds.limit_bytes),
            )
            return False

        logger.warning(
            "Active backend %d over capacity: %s of %s",
            active.index,
            format_size(size),
            format_size(self.thresholds.limit_bytes),
        )
        try:
            candidate = await self.find_candidate()
        except NoCandidateError:
            logger.error(
                "All backends full or unavailable; staying on backend %d",
                active.index,
            )
            return False
        await self.state.switch_active(candidate.index)
        return True

    async def populate(self) -> bool:
        """Early size pass after startup. Returns False if skipped."""
        if self.state.switching:
            return False
        self.state.switching = True
        try:
            await self.refresh_sizes()
        except Exception:
            logger.exception("Size refresh failed")
        finally:
            self.state.switching = False
        return True

    async def tick(self) -> bool:
        """
        One monitor cycle. Returns False if another cycle was still running.

        Errors are logged and never raised to the caller.
        """
        if self.state.switching:
            logger.debug("Failover check already in progress; skipping tick")
            return False
        self.state.switching = True
        try:
            await self.refresh_sizes()
            await self.evaluate()
        except Exception:
            logger.exception("Failover check failed; will retry next cycle")
        finally:
            self.state.switching = False
        return True
