"""
FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from storage_router.config import Settings, get_settings
from storage_router.handles import HandleFactory
from storage_router.manager import StorageRouter
from storage_router.routes import router


def create_app(
    settings: Optional[Settings] = None,
    factory: Optional[HandleFactory] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        storage = StorageRouter.from_settings(settings, factory)
        await storage.initialize()
        app.state.storage_router = storage
        try:
            yield
        finally:
            await storage.shutdown()

    app = FastAPI(title="Storage Router", version="0.1.0", lifespan=lifespan)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
