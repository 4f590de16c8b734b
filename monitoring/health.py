"""
Health check endpoints for Kubernetes readiness/liveness probes.

Checks:
- Database connectivity
- Deposit clearance scheduler state
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text

from core.cron_service import CronService
from database.connection import get_session_factory

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for monitoring system dependencies.

    Provides:
    - Database connectivity check
    - Scheduler status check
    - Overall system health status
    """

    def __init__(self, cron_service: Optional[CronService] = None) -> None:
        """
        Initialize health check service.

        Args:
            cron_service: Scheduler to report on (omitted when not running one)
        """
        self.cron_service = cron_service

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict[str, Any]: Database health status

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            session_factory = get_session_factory()
            async with session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

                return {
                    "status": "healthy",
                    "service": "database",
                    "message": "Database connection successful",
                }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    def check_scheduler(self) -> Dict[str, Any]:
        """
        Report the deposit clearance scheduler.

        A recorded sweep error does not make the service unhealthy; a
        scheduler that was started and has since died does.

        Returns:
            Dict[str, Any]: Scheduler health status

        Raises:
            HealthCheckError: If the scheduler is enabled but not running
        """
        if self.cron_service is None:
            return {"status": "disabled", "service": "scheduler"}

        if not self.cron_service.is_scheduled:
            raise HealthCheckError("Deposit clearance scheduler is not running")

        status = self.cron_service.get_status()
        return {
            "status": "healthy",
            "service": "scheduler",
            "cron_schedule": status["cron_schedule"],
            "last_run": status["last_run"].isoformat() if status["last_run"] else None,
            "last_error": status["last_error"],
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        try:
            checks["database"] = await self.check_database()
        except HealthCheckError as e:
            checks["database"] = {
                "status": "unhealthy",
                "service": "database",
                "error": str(e),
            }
            all_healthy = False

        try:
            checks["scheduler"] = self.check_scheduler()
        except HealthCheckError as e:
            checks["scheduler"] = {
                "status": "unhealthy",
                "service": "scheduler",
                "error": str(e),
            }
            all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness probe endpoint.

        Simple check that the application is running.
        Does not check external dependencies.

        Returns:
            Dict[str, Any]: Liveness status
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness probe endpoint.

        Checks if application is ready to accept traffic.

        Returns:
            Dict[str, Any]: Readiness status
        """
        return await self.check_all()
