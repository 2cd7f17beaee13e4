"""
Schema provisioning for backends.
"""

from __future__ import annotations

import logging

from storage_router.handles import DataStoreHandle
from storage_router.models import Base

logger = logging.getLogger(__name__)


def _drop_and_create(connection) -> None:
    Base.metadata.drop_all(connection)
    Base.metadata.create_all(connection)


async def create_schema(handle: DataStoreHandle) -> None:
    await handle.run_sync(Base.metadata.create_all)


async def reset_schema(handle: DataStoreHandle) -> None:
    """Drop and recreate every table on one backend. Destroys its data."""
    await handle.run_sync(_drop_and_create)
    logger.info("Reset schema on %s", handle.name)
