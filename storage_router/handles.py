"""
Data-store handles and the factory that opens them.

A handle wraps one SQLAlchemy async engine. The dispatch proxy exposes the
same surface, so activating an arbitrary backend and using the single
default backend are the same operation from the caller's side.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from storage_router.errors import ConnectError, ProbeError

if TYPE_CHECKING:
    from storage_router.state import BackendDescriptor

logger = logging.getLogger(__name__)

_ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "postgresql+psycopg2": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
    "sqlite+pysqlite": "sqlite+aiosqlite",
}

# libpq options asyncpg does not understand
_LIBPQ_ONLY_OPTIONS = ("sslmode", "channel_binding")


class DataStoreHandle(Protocol):
    """Interface shared by backend handles and the dispatch proxy."""

    name: str

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def execute(self, statement: Any, parameters: Optional[dict] = None) -> Any:
        ...

    def session(self) -> Any:
        ...

    async def run_sync(self, fn: Callable[..., Any], *args: Any) -> Any:
        ...

    async def query_size(self) -> int:
        ...


class HandleFactory(Protocol):
    async def open(self, descriptor: "BackendDescriptor") -> DataStoreHandle:
        ...


def to_async_url(url: str | URL) -> URL:
    """
    Upgrade a plain driver URL to its asyncio driver.
    """
    parsed = make_url(url)
    driver = _ASYNC_DRIVERS.get(parsed.drivername)
    if driver:
        parsed = parsed.set(drivername=driver)
    if parsed.drivername == "postgresql+asyncpg":
        sslmode = parsed.query.get("sslmode")
        parsed = parsed.difference_update_query(_LIBPQ_ONLY_OPTIONS)
        if sslmode and "ssl" not in parsed.query:
            parsed = parsed.update_query_dict({"ssl": sslmode})
    return parsed


def mask_url(url: str | URL) -> str:
    """Render a connection URL with the password hidden."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except SQLAlchemyError:
        return "<unparseable url>"


class SqlAlchemyHandle:
    """
    One async SQLAlchemy engine bound to one backend URL.
    """

    def __init__(self, url: str, *, name: str | None = None, echo: bool = False):
        self.url = to_async_url(url)
        self.name = name or mask_url(self.url)
        self.echo = echo
        self.engine: AsyncEngine | None = None
        self.Session: async_sessionmaker[AsyncSession] | None = None

    def _create_engine(self) -> AsyncEngine:
        options: dict[str, Any] = {"echo": self.echo}
        if self.url.get_backend_name() == "sqlite":
            if self.url.database in (None, "", ":memory:"):
                # Keep one shared connection so the in-memory database survives.
                options["poolclass"] = StaticPool
        else:
            options["pool_pre_ping"] = True
            options["pool_recycle"] = 1800
        return create_async_engine(self.url, **options)

    @property
    def dialect(self) -> str:
        return self.url.get_backend_name()

    async def connect(self) -> None:
        if self.engine is not None:
            return
        engine = self._create_engine()
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except BaseException:
            await engine.dispose()
            raise
        self.engine = engine
        self.Session = async_sessionmaker(bind=engine, expire_on_commit=False)

    async def close(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self.Session = None

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise RuntimeError(f"Handle {self.name} is not connected")
        return self.engine

    async def execute(self, statement: Any, parameters: Optional[dict] = None) -> Any:
        """
        Run one statement in its own transaction.

        Returns the rows as mappings for row-returning statements, otherwise
        the affected row count.
        """
        if isinstance(statement, str):
            statement = text(statement)
        async with self._require_engine().begin() as conn:
            result = await conn.execute(statement, parameters)
            if result.returns_rows:
                return list(result.mappings().all())
            return result.rowcount

    def session(self) -> AsyncSession:
        self._require_engine()
        return self.Session()

    async def run_sync(self, fn: Callable[..., Any], *args: Any) -> Any:
        async with self._require_engine().begin() as conn:
            return await conn.run_sync(fn, *args)

    async def query_size(self) -> int:
        """Return the occupied storage of this backend in bytes."""
        dialect = self.dialect
        try:
            async with self._require_engine().connect() as conn:
                if dialect == "postgresql":
                    result = await conn.execute(
                        text("SELECT pg_database_size(current_database()) AS size")
                    )
                    return int(result.scalar_one())
                if dialect == "sqlite":
                    page_count = (await conn.execute(text("PRAGMA page_count"))).scalar_one()
                    page_size = (await conn.execute(text("PRAGMA page_size"))).scalar_one()
                    return int(page_count) * int(page_size)
        except SQLAlchemyError as exc:
            raise ProbeError(f"Size query failed on {self.name}: {exc}") from exc
        raise ProbeError(f"No size query for dialect {dialect!r}")


class SqlAlchemyHandleFactory:
    """Opens connected ``SqlAlchemyHandle`` instances for descriptors."""

    def __init__(self, *, echo: bool = False):
        self.echo = echo

    async def open(self, descriptor: "BackendDescriptor") -> SqlAlchemyHandle:
        try:
            handle = SqlAlchemyHandle(
                descriptor.connection_url,
                name=f"db{descriptor.index}",
                echo=self.echo,
            )
            await handle.connect()
        except Exception as exc:
            logger.error(
                "Failed to connect backend %d (%s): %s",
                descriptor.index,
                mask_url(descriptor.connection_url),
                exc,
            )
            raise ConnectError(descriptor.index, str(exc)) from exc
        logger.info(
            "Connected backend %d (%s)",
            descriptor.index,
            mask_url(descriptor.connection_url),
        )
        return handle
