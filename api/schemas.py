"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CronStatusResponse(BaseModel):
    """Response schema for the clearance job status."""

    is_running: bool = Field(..., description="Whether a sweep currently holds the lock")
    last_run: Optional[datetime] = Field(default=None, description="Start of the last sweep")
    last_error: Optional[str] = Field(default=None, description="Most recent sweep error")
    cron_schedule: str = Field(..., description="Sweep cadence")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "is_running": False,
                    "last_run": "2026-01-06T10:00:00Z",
                    "last_error": None,
                    "cron_schedule": "Every Minute",
                }
            ]
        }
    }


class ClearanceRunResponse(BaseModel):
    """Response schema for a manually triggered sweep."""

    found: int = Field(..., description="Matured deposits found")
    cleared: int = Field(..., description="Deposits cleared")
    skipped: int = Field(..., description="Deposits already cleared elsewhere")
    failed: int = Field(..., description="Deposits that failed to clear")
    cleared_amount: int = Field(..., description="Total cleared in minor units")
    errors: List[str] = Field(default_factory=list, description="Per-transaction errors")


class AuditLogResponse(BaseModel):
    """Single audit log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    actor_id: Optional[str] = None
    actor_type: str
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None
    target_id: Optional[str] = None
    target_type: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: str
    created_at: datetime


class PaginationResponse(BaseModel):
    """Pagination block."""

    page: int
    limit: int
    total: int
    pages: int


class AuditLogListResponse(BaseModel):
    """Response schema for audit log listing."""

    logs: List[AuditLogResponse]
    pagination: PaginationResponse


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
