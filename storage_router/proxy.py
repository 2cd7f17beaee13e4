"""
Dispatch proxy: the single handle application code talks to.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

from storage_router.handles import DataStoreHandle, HandleFactory
from storage_router.state import BackendDescriptor, RouterState

logger = logging.getLogger(__name__)

_LIFECYCLE_OPERATIONS = frozenset({"connect", "close"})


class DispatchProxy:
    """
    Forwards every operation to whichever backend is active.

    The handle is resolved once per call, so a single call (or a whole
    ``session()`` block) always runs against one backend even if the
    monitor switches backends meanwhile. With no configured backends the
    proxy forwards to one default handle opened on first use.
    """

    name = "proxy"

    def __init__(
        self,
        state: RouterState,
        factory: HandleFactory,
        default_url: str,
    ):
        self.state = state
        self.factory = factory
        self.default_descriptor = BackendDescriptor(index=0, connection_url=default_url)
        self._default: Optional[DataStoreHandle] = None
        self._default_lock = asyncio.Lock()

    async def default_handle(self) -> DataStoreHandle:
        if self._default is None:
            async with self._default_lock:
                if self._default is None:
                    self._default = await self.factory.open(self.default_descriptor)
        return self._default

    async def resolve(self) -> DataStoreHandle:
        entry = self.state.active()
        if entry is None:
            return await self.default_handle()
        return await self.state.ensure_handle(entry)

    async def connect(self) -> None:
        await self.resolve()

    async def close(self) -> None:
        """Close the default handle. Backend handles belong to the router state."""
        if self._default is not None:
            default, self._default = self._default, None
            await default.close()

    async def execute(self, statement: Any, parameters: Optional[dict] = None) -> Any:
        handle = await self.resolve()
        return await handle.execute(statement, parameters)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Any]:
        handle = await self.resolve()
        async with handle.session() as session:
            yield session

    async def run_sync(self, fn: Callable[..., Any], *args: Any) -> Any:
        handle = await self.resolve()
        return await handle.run_sync(fn, *args)

    async def query_size(self) -> int:
        handle = await self.resolve()
        return await handle.query_size()

    async def call(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        """
        Invoke ``operation`` by name on the active handle.

        Operations the active handle does not expose are looked up on the
        default handle instead. ``connect`` and ``close`` act on the proxy.
        """
        if operation in _LIFECYCLE_OPERATIONS:
            # Backend handles are owned by the router state; never close them here.
            return await getattr(self, operation)()
        handle = await self.resolve()
        target = getattr(handle, operation, None)
        if target is None:
            fallback = await self.default_handle()
            logger.debug(
                "%s has no %r; using default handle", getattr(handle, "name", handle), operation
            )
            target = getattr(fallback, operation)
        if not callable(target):
            return target
        result = target(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result
