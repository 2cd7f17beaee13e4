"""
Test doubles for handles and the handle factory.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from storage_router.errors import ConnectError
from storage_router.prober import BYTES_PER_MB


def mb(value: float) -> int:
    return int(value * BYTES_PER_MB)


class FakeHandle:
    """Records every call it receives."""

    def __init__(self, name: str, size_bytes: int = 0):
        self.name = name
        self.size_bytes = size_bytes
        self.calls: list[tuple[str, object]] = []
        self.closed = False
        self.probes = 0
        self.probe_error: Exception | None = None
        self.probe_gate: asyncio.Event | None = None

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True

    async def execute(self, statement, parameters=None):
        self.calls.append(("execute", statement))
        return self.name

    @asynccontextmanager
    async def session(self):
        self.calls.append(("session", None))
        yield self

    async def run_sync(self, fn, *args):
        self.calls.append(("run_sync", fn))
        return fn(self, *args)

    async def query_size(self) -> int:
        if self.probe_gate is not None:
            await self.probe_gate.wait()
        self.probes += 1
        if self.probe_error is not None:
            raise self.probe_error
        return self.size_bytes


class FakeFactory:
    """
    Opens ``FakeHandle`` objects keyed by connection URL.

    ``sizes`` maps URL to occupied bytes; URLs in ``failing`` raise
    ``ConnectError`` when opened.
    """

    def __init__(self, sizes: dict[str, int] | None = None, failing=()):
        self.sizes = dict(sizes or {})
        self.failing = set(failing)
        self.opened: list[str] = []
        self.handles: dict[str, FakeHandle] = {}

    async def open(self, descriptor) -> FakeHandle:
        await asyncio.sleep(0)
        url = descriptor.connection_url
        self.opened.append(url)
        if url in self.failing:
            raise ConnectError(descriptor.index, "connection refused")
        handle = FakeHandle(url, self.sizes.get(url, 0))
        self.handles[url] = handle
        return handle
