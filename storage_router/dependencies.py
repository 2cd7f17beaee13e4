"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Request

from storage_router.manager import StorageRouter
from storage_router.proxy import DispatchProxy


def get_storage_router(request: Request) -> StorageRouter:
    """Return the router built by the app lifespan."""
    return request.app.state.storage_router


def get_db(request: Request) -> DispatchProxy:
    """Return the data-store handle request handlers should use."""
    return get_storage_router(request).proxy
