"""
Capacity probing for backend handles.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

UNKNOWN_SIZE = -1
BYTES_PER_MB = 1024 * 1024


async def probe_size(handle) -> int:
    """
    Return the occupied size of ``handle`` in bytes, or ``UNKNOWN_SIZE``.

    A failed probe is never reported as zero: an empty store and a store we
    could not measure must stay distinguishable. Nothing raised by the
    handle escapes this function.
    """
    try:
        size = await handle.query_size()
    except Exception as exc:
        logger.warning(
            "Size probe failed on %s: %s", getattr(handle, "name", handle), exc
        )
        return UNKNOWN_SIZE
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        logger.warning(
            "Size probe on %s returned %r; treating as unknown",
            getattr(handle, "name", handle),
            size,
        )
        return UNKNOWN_SIZE
    return size


def to_megabytes(size_bytes: int) -> float | None:
    if size_bytes < 0:
        return None
    return round(size_bytes / BYTES_PER_MB, 2)


def format_size(size_bytes: int) -> str:
    mb = to_megabytes(size_bytes)
    return "unknown" if mb is None else f"{mb:.2f}MB"
