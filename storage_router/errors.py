"""
Exceptions raised by the storage router.
"""

from __future__ import annotations


class StorageRouterError(Exception):
    """Base class for router errors."""


class ConnectError(StorageRouterError):
    """Opening a handle to a backend failed."""

    def __init__(self, index: int, message: str):
        super().__init__(f"Backend {index}: {message}")
        self.index = index


class ProbeError(StorageRouterError):
    """A size query against a backend failed."""


class NoCandidateError(StorageRouterError):
    """Every other backend is unavailable or at/over capacity."""


class InvalidBackendIndexError(StorageRouterError, ValueError):
    def __init__(self, index: int, count: int):
        super().__init__(f"Invalid DB index {index} (have {count} backends)")
        self.index = index
        self.count = count


class RouterBusyError(StorageRouterError):
    """A failover decision is already in progress."""
