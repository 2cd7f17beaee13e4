"""
Composition root wiring router state, failover policy, monitor and proxy.
"""

from __future__ import annotations

import logging
from typing import Optional

from storage_router.config import Settings
from storage_router.errors import ConnectError, RouterBusyError
from storage_router.handles import HandleFactory, SqlAlchemyHandleFactory
from storage_router.monitor import MonitorLoop
from storage_router.policy import FailoverPolicy
from storage_router.prober import UNKNOWN_SIZE, probe_size, to_megabytes
from storage_router.proxy import DispatchProxy
from storage_router.state import BackendDescriptor, CapacityThresholds, RouterState

logger = logging.getLogger(__name__)

IN_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


class StorageRouter:
    """
    Owns one ``RouterState`` and everything that shares it.

    Built once at startup and handed to whoever needs it (the HTTP layer
    keeps it on ``app.state``).
    """

    def __init__(
        self,
        urls: list[str],
        factory: HandleFactory,
        *,
        thresholds: CapacityThresholds,
        active_index: int = 0,
        default_url: Optional[str] = None,
        interval_seconds: float = 3600.0,
        populate_delay_seconds: float = 5.0,
        evaluate_delay_seconds: float = 10.0,
    ):
        descriptors = [
            BackendDescriptor(index=i, connection_url=url) for i, url in enumerate(urls)
        ]
        self.state = RouterState(descriptors, factory, active_index=active_index)
        self.thresholds = thresholds
        self.policy = FailoverPolicy(self.state, thresholds)
        self.proxy = DispatchProxy(self.state, factory, default_url or IN_MEMORY_URL)
        self.monitor: Optional[MonitorLoop] = None
        if self.multi_backend:
            self.monitor = MonitorLoop(
                self.policy,
                interval_seconds,
                populate_delay_seconds=populate_delay_seconds,
                evaluate_delay_seconds=evaluate_delay_seconds,
            )
        self.initialized = False

    @classmethod
    def from_settings(
        cls, settings: Settings, factory: Optional[HandleFactory] = None
    ) -> "StorageRouter":
        return cls(
            settings.backend_urls(),
            factory or SqlAlchemyHandleFactory(echo=settings.sql_echo),
            thresholds=CapacityThresholds.from_megabytes(
                settings.db_size_limit_mb, settings.db_warn_ratio
            ),
            active_index=settings.active_db_index,
            default_url=settings.database_url,
            interval_seconds=settings.db_check_interval_ms / 1000,
            populate_delay_seconds=settings.db_initial_probe_delay_ms / 1000,
            evaluate_delay_seconds=settings.db_initial_failover_delay_ms / 1000,
        )

    @property
    def multi_backend(self) -> bool:
        return len(self.state) > 0

    async def _open_initial_backend(self) -> None:
        try:
            await self.state.ensure_handle(self.state.active())
            return
        except ConnectError:
            logger.error(
                "Active backend %d unavailable at startup", self.state.active_index
            )
        for entry in self.state.backends:
            if entry.index == self.state.active_index:
                continue
            try:
                await self.state.switch_active(entry.index)
                return
            except ConnectError:
                continue
        logger.error("No backend could be opened; running degraded")

    async def initialize(self) -> None:
        if self.initialized:
            return
        if self.multi_backend:
            logger.info(
                "Storage router with %d backends, active %d",
                len(self.state),
                self.state.active_index,
            )
            await self._open_initial_backend()
            self.monitor.start()
        else:
            logger.info("No DATABASE_URLS configured; using a single database")
            await self.proxy.connect()
        self.initialized = True

    async def status(self) -> dict:
        """Snapshot for the operator diagnostics endpoint."""
        if not self.multi_backend:
            return {"active_database": 0, "total_databases": 1, "databases": []}
        # Live sizes are reported, not stored: only the monitor writes sizes.
        live: dict[int, int] = {}
        for entry in self.state.backends:
            if entry.handle is not None:
                live[entry.index] = await probe_size(entry.handle)
        rows = self.state.status()
        for row in rows:
            size = live.get(row["index"], UNKNOWN_SIZE)
            if size >= 0:
                row["size_bytes"] = size
                row["size_mb"] = to_megabytes(size)
        return {
            "active_database": self.state.active_index,
            "total_databases": len(self.state),
            "databases": rows,
        }

    async def manual_switch(self, index: int) -> dict:
        """Operator-triggered switch outside the automatic policy."""
        if self.state.switching:
            raise RouterBusyError("A failover check is in progress")
        self.state.switching = True
        try:
            await self.state.switch_active(index)
        finally:
            self.state.switching = False
        return self.state.backends[index].as_dict(self.state.active_index)

    async def shutdown(self) -> None:
        if self.monitor is not None:
            await self.monitor.stop()
        await self.state.close_all()
        await self.proxy.close()
        self.initialized = False
