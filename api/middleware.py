"""
Audit interceptor for admin endpoints.

``audit_middleware(action)`` is a per-route (or per-router) dependency that
marks a request as audited. ``AuditMiddleware`` is installed once on the app
and, after the handler finishes, records who did what and whether it
succeeded. The response is passed through untouched, and audit write
failures never fail the request.
"""
import time
from typing import Any, Callable, Coroutine, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from core.audit import AuditActor, AuditService

logger = structlog.get_logger(__name__)

AUDIT_ACTION_STATE = "audit_action"


def audit_middleware(
    action_name: Optional[str] = None,
) -> Callable[[Request], Coroutine[Any, Any, None]]:
    """
    Build a dependency that marks the request for auditing.

    Args:
        action_name: Action label; derived as "<METHOD> <path>" if omitted

    Returns:
        Callable: FastAPI dependency

    Example:
        @admin_router.post(
            "/cron/deposit-clearance",
            dependencies=[Depends(audit_middleware("RUN_DEPOSIT_CLEARANCE"))],
        )
    """

    async def mark_audited(request: Request) -> None:
        # Route-level labels override the router-level default
        current = getattr(request.state, AUDIT_ACTION_STATE, None)
        if action_name or current is None:
            action = action_name or f"{request.method} {request.url.path}"
            setattr(request.state, AUDIT_ACTION_STATE, action)

    return mark_audited


def resolve_actor(request: Request) -> Optional[AuditActor]:
    """
    Read the authenticated actor placed on ``request.state`` by the auth layer.

    Admins take precedence over users. The stored object needs an ``id``
    and may carry ``name`` and ``email``.
    """
    for actor_type in ("admin", "user"):
        principal = getattr(request.state, actor_type, None)
        if principal is None:
            continue
        if isinstance(principal, AuditActor):
            return principal
        principal_id = getattr(principal, "id", None)
        return AuditActor(
            id=str(principal_id) if principal_id is not None else None,
            type=actor_type,
            name=getattr(principal, "name", None),
            email=getattr(principal, "email", None),
        )
    return None


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Writes an audit entry for every request marked by ``audit_middleware``.

    Features:
    - Records action, actor, outcome and timestamp
    - Records failures, including unhandled exceptions
    - Never alters the response
    """

    def __init__(self, app: Callable, audit_service: Optional[AuditService] = None) -> None:
        super().__init__(app)
        self.audit_service = audit_service or AuditService()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Run the handler, then record the audit entry if requested."""
        start_time = time.time()
        status_code = 500
        error_message: Optional[str] = None

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response

        except Exception as e:
            error_message = str(e)
            raise

        finally:
            action = getattr(request.state, AUDIT_ACTION_STATE, None)
            if action:
                await self._record(
                    request, action, status_code, error_message, time.time() - start_time
                )

    async def _record(
        self,
        request: Request,
        action: str,
        status_code: int,
        error_message: Optional[str],
        duration_seconds: float,
    ) -> None:
        try:
            actor = resolve_actor(request) or AuditActor(type="anonymous")
            target_id = request.path_params.get("id")
            details: dict[str, Any] = {
                "method": request.method,
                "url": str(request.url.path),
                "query": dict(request.query_params),
                "status_code": status_code,
                "duration_ms": int(duration_seconds * 1000),
            }
            if error_message:
                details["error"] = error_message

            audit_service = getattr(request.app.state, "audit_service", None) or self.audit_service
            await audit_service.log_action(
                action=action,
                actor=actor,
                status="success" if 200 <= status_code < 300 else "failure",
                target_id=str(target_id) if target_id is not None else None,
                target_type="resource" if target_id is not None else None,
                details=details,
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )
        except Exception as e:
            logger.error("audit_middleware_error", action=action, error=str(e))
