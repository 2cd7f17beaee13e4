"""
Fire-and-forget background tasks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)

# The event loop only keeps weak references to tasks.
_background_tasks: set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task %s failed", task.get_name(), exc_info=exc
        )


def spawn_background(coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
    """
    Schedule ``coro`` without awaiting it. Failures are logged, never raised.
    """
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task
