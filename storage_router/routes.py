"""
HTTP routes exposing router diagnostics and operator controls.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from storage_router.dependencies import get_storage_router
from storage_router.errors import ConnectError, InvalidBackendIndexError, RouterBusyError
from storage_router.manager import StorageRouter
from storage_router.schemas import (
    DbStatusResponse,
    HealthResponse,
    SwitchRequest,
    SwitchResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(
        status="ok",
        message="API is running",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/db-status", response_model=DbStatusResponse)
async def db_status(storage: StorageRouter = Depends(get_storage_router)):
    return DbStatusResponse(**await storage.status())


@router.post("/db-switch", response_model=SwitchResponse)
async def db_switch(
    payload: SwitchRequest,
    storage: StorageRouter = Depends(get_storage_router),
):
    """
    Switch the active backend by hand, bypassing the capacity policy.
    """
    try:
        backend = await storage.manual_switch(payload.index)
    except InvalidBackendIndexError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except RouterBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ConnectError as exc:
        logger.error("Manual switch to backend %d failed: %s", payload.index, exc)
        raise HTTPException(status_code=503, detail="Backend unavailable")
    return SwitchResponse(
        active_database=storage.state.active_index,
        backend=backend,
    )
