"""
API routes for the deposit clearance service.
"""
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.ext.asyncio import AsyncSession

from core.audit import AuditService
from core.cron_service import CronService
from database.connection import get_db
from monitoring.health import HealthCheck

from .middleware import audit_middleware
from .schemas import (
    AuditLogListResponse,
    ClearanceRunResponse,
    CronStatusResponse,
    HealthCheckResponse,
)

logger = structlog.get_logger(__name__)

# Every admin route is audited; individual routes may set a specific action label
admin_router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(audit_middleware())],
)
monitoring_router = APIRouter(tags=["monitoring"])


def get_cron_service(request: Request) -> CronService:
    """Resolve the scheduler created during application startup."""
    cron_service = getattr(request.app.state, "cron_service", None)
    if cron_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deposit clearance service is not initialised",
        )
    return cron_service


def get_health_check(request: Request) -> HealthCheck:
    # The scheduler is only checked when this process is meant to run it
    if getattr(request.app.state, "scheduler_enabled", False):
        return HealthCheck(cron_service=request.app.state.cron_service)
    return HealthCheck()


def get_audit_service(request: Request) -> AuditService:
    return getattr(request.app.state, "audit_service", None) or AuditService()


@admin_router.get(
    "/cron/status",
    response_model=CronStatusResponse,
    summary="Deposit clearance status",
    description="Report whether the clearance job is running, when it last ran and its last error",
)
async def cron_status(cron_service: CronService = Depends(get_cron_service)) -> Dict[str, Any]:
    """Get the clearance job status."""
    return cron_service.get_status()


@admin_router.post(
    "/cron/deposit-clearance",
    response_model=ClearanceRunResponse,
    summary="Run deposit clearance",
    description="Manually trigger one deposit clearance sweep",
    dependencies=[Depends(audit_middleware("RUN_DEPOSIT_CLEARANCE"))],
)
async def run_deposit_clearance(
    cron_service: CronService = Depends(get_cron_service),
) -> Dict[str, Any]:
    """
    Run a clearance sweep now.

    Returns 409 if another sweep holds the job lock.
    """
    logger.info("api_deposit_clearance_requested")

    summary = await cron_service.run_deposit_clearance()

    if summary is None:
        if cron_service.last_outcome == "skipped":
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Deposit clearance is already running",
            )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Deposit clearance failed: {cron_service.last_error}",
        )

    logger.info(
        "api_deposit_clearance_completed",
        cleared=summary["cleared"],
        failed=summary["failed"],
    )
    return summary


@admin_router.get(
    "/audit-logs",
    response_model=AuditLogListResponse,
    summary="List audit logs",
    description="Paginated audit trail, newest first",
)
async def list_audit_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    action: Optional[str] = Query(default=None),
    actor_email: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    audit_service: AuditService = Depends(get_audit_service),
) -> Dict[str, Any]:
    """List audit log entries."""
    try:
        return await audit_service.get_logs(
            db,
            action=action,
            actor_email=actor_email,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )
    except Exception as e:
        logger.error("api_list_audit_logs_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve audit logs",
        )


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
    description="Kubernetes liveness probe endpoint",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
    description="Kubernetes readiness probe endpoint",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    try:
        result = await health_check.readiness()
        if result["status"] != "healthy":
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
        return result
    except HTTPException:
        raise
    except Exception as e:
        logger.error("readiness_check_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "error": str(e)},
        )


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
