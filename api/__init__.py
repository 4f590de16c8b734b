"""FastAPI application and routes."""
from .main import app
from .schemas import (
    AuditLogListResponse,
    ClearanceRunResponse,
    CronStatusResponse,
)

__all__ = [
    "app",
    "AuditLogListResponse",
    "ClearanceRunResponse",
    "CronStatusResponse",
]
