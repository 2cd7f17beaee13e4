"""
Router state: the backends we know about and which one is active.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Iterable, Optional

from storage_router.errors import ConnectError, InvalidBackendIndexError
from storage_router.handles import DataStoreHandle, HandleFactory
from storage_router.prober import BYTES_PER_MB, UNKNOWN_SIZE, format_size, to_megabytes

logger = logging.getLogger(__name__)

ACTIVE_INDEX_ENV = "ACTIVE_DB_INDEX"


@dataclass(frozen=True)
class BackendDescriptor:
    index: int
    connection_url: str = field(repr=False)


@dataclass
class BackendState:
    descriptor: BackendDescriptor
    handle: Optional[DataStoreHandle] = None
    size_bytes: int = UNKNOWN_SIZE
    available: bool = True
    _open_lock: asyncio.Lock = field(
        default_factory=asyncio.Lock, repr=False, compare=False
    )

    @property
    def index(self) -> int:
        return self.descriptor.index

    @property
    def connected(self) -> bool:
        return self.handle is not None

    def as_dict(self, active_index: int) -> dict:
        return {
            "index": self.index,
            "size_bytes": self.size_bytes,
            "size_mb": to_megabytes(self.size_bytes),
            "active": self.index == active_index,
            "available": self.available,
            "connected": self.connected,
        }


@dataclass(frozen=True)
class CapacityThresholds:
    limit_bytes: int
    warn_bytes: int

    @classmethod
    def from_megabytes(
        cls, limit_mb: float, warn_ratio: float = 0.85
    ) -> "CapacityThresholds":
        if limit_mb <= 0:
            raise ValueError("limit_mb must be positive")
        if not 0 < warn_ratio <= 1:
            raise ValueError("warn_ratio must be in (0, 1]")
        limit_bytes = int(limit_mb * BYTES_PER_MB)
        return cls(limit_bytes=limit_bytes, warn_bytes=int(limit_bytes * warn_ratio))


class RouterState:
    """
    Authoritative record of all backends and the active index.

    ``active_index`` changes only through ``switch_active``, which opens the
    target handle before publishing the new index. Readers therefore never
    see an index whose handle is still being opened.
    """

    def __init__(
        self,
        descriptors: Iterable[BackendDescriptor],
        factory: HandleFactory,
        active_index: int = 0,
    ):
        self.backends: list[BackendState] = [
            BackendState(descriptor=d)
            for d in sorted(descriptors, key=lambda d: d.index)
        ]
        if [b.index for b in self.backends] != list(range(len(self.backends))):
            raise ValueError("Backend indices must be 0..n-1 without gaps")
        self.factory = factory
        if self.backends and not 0 <= active_index < len(self.backends):
            logger.warning(
                "Configured active index %d out of range (have %d backends); using 0",
                active_index,
                len(self.backends),
            )
            active_index = 0
        self._active_index = active_index
        self.switching = False

    @property
    def active_index(self) -> int:
        return self._active_index

    def __len__(self) -> int:
        return len(self.backends)

    def active(self) -> Optional[BackendState]:
        if not self.backends:
            return None
        return self.backends[self._active_index]

    async def ensure_handle(self, entry: BackendState) -> DataStoreHandle:
        """Open the entry's handle once; later callers reuse it."""
        if entry.handle is not None:
            return entry.handle
        async with entry._open_lock:
            if entry.handle is None:
                try:
                    handle = await self.factory.open(entry.descriptor)
                except ConnectError:
                    entry.available = False
                    raise
                entry.handle = handle
                entry.available = True
        return entry.handle

    def mark_probe(self, entry: BackendState, size_bytes: int) -> None:
        if size_bytes >= 0:
            entry.size_bytes = size_bytes
            entry.available = True
        else:
            entry.available = False

    async def switch_active(self, new_index: int) -> DataStoreHandle:
        """
        Make ``new_index`` the active backend and return its handle.

        If the handle cannot be opened the ``ConnectError`` propagates and
        the active index is left unchanged.
        """
        if not 0 <= new_index < len(self.backends):
            raise InvalidBackendIndexError(new_index, len(self.backends))
        previous = self.backends[self._active_index]
        target = self.backends[new_index]
        handle = await self.ensure_handle(target)
        if new_index == self._active_index:
            logger.info(
                "Backend %d already active (%s)", new_index, format_size(target.size_bytes)
            )
            return handle
        self._active_index = new_index
        os.environ[ACTIVE_INDEX_ENV] = str(new_index)
        logger.warning(
            "Switched active backend %d (%s) -> %d (%s)",
            previous.index,
            format_size(previous.size_bytes),
            target.index,
            format_size(target.size_bytes),
        )
        return handle

    def status(self) -> list[dict]:
        return [entry.as_dict(self._active_index) for entry in self.backends]

    async def close_all(self) -> None:
        for entry in self.backends:
            if entry.handle is None:
                continue
            try:
                await entry.handle.close()
            except Exception:
                logger.exception("Failed to close backend %d", entry.index)
            entry.handle = None
