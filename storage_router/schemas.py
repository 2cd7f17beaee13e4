"""
Pydantic schemas for the operator HTTP surface.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: datetime


class BackendStatus(BaseModel):
    index: int
    size_bytes: int
    size_mb: Optional[float] = None
    active: bool
    available: bool
    connected: bool


class DbStatusResponse(BaseModel):
    active_database: int
    total_databases: int
    databases: list[BackendStatus]


class SwitchRequest(BaseModel):
    index: int


class SwitchResponse(BaseModel):
    active_database: int
    backend: BackendStatus
