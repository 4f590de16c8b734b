"""
Audit trail service.

Writes are best-effort: a failure to record an audit entry is logged and
never propagates into the request being audited.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.connection import get_session_factory
from database.models import AuditLog
from monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuditActor:
    """Who performed an audited action, as resolved by the auth layer."""

    id: Optional[str] = None
    type: str = "system"
    name: Optional[str] = None
    email: Optional[str] = None


SYSTEM_ACTOR = AuditActor(type="system", name="System", email="system@vtpay.com")


class AuditService:
    """Records and queries audit log entries."""

    def __init__(
        self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    ):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def log_action(
        self,
        action: str,
        actor: Optional[AuditActor] = None,
        status: str = "success",
        target_id: Optional[str] = None,
        target_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Persist an audit entry in its own session.

        Args:
            action: Action label (required, non-empty)
            actor: Actor performing the action (system if omitted)
            status: 'success' or 'failure'
            target_id: Identifier of the affected resource
            target_type: Kind of the affected resource
            details: Free-form request details
            ip_address: Client address
            user_agent: Client user agent

        Returns:
            Optional[AuditLog]: The stored entry, or None if the write failed
        """
        actor = actor or SYSTEM_ACTOR
        try:
            if not action:
                raise ValueError("Audit action must not be empty")

            entry = AuditLog(
                action=action,
                actor_id=actor.id,
                actor_type=actor.type,
                actor_name=actor.name,
                actor_email=actor.email,
                target_id=target_id,
                target_type=(target_type or "unknown") if target_id else None,
                details=details,
                ip_address=ip_address,
                user_agent=user_agent,
                status=status,
            )
            async with self.session_factory() as db:
                db.add(entry)
                await db.commit()

        except Exception as e:
            metrics.record_audit_write("failed")
            logger.error("audit_log_write_failed", action=action, error=str(e))
            return None

        metrics.record_audit_write("written")
        logger.debug("audit_log_written", action=action, actor_type=actor.type, status=status)
        return entry

    async def get_logs(
        self,
        db: AsyncSession,
        action: Optional[str] = None,
        actor_email: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """
        List audit entries newest first.

        Args:
            db: Database session
            action: Case-insensitive substring of the action
            actor_email: Case-insensitive substring of the actor email
            start_date: Earliest created_at (inclusive)
            end_date: Latest created_at (inclusive)
            page: 1-based page number
            limit: Page size

        Returns:
            Dict[str, Any]: ``logs`` and ``pagination`` (page, limit, total, pages)
        """
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = []
        if action:
            conditions.append(AuditLog.action.ilike(f"%{action}%"))
        if actor_email:
            conditions.append(AuditLog.actor_email.ilike(f"%{actor_email}%"))
        if start_date:
            conditions.append(AuditLog.created_at >= start_date)
        if end_date:
            conditions.append(AuditLog.created_at <= end_date)

        stmt = (
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(AuditLog).where(*conditions)

        logs = list((await db.execute(stmt)).scalars().all())
        total = (await db.execute(count_stmt)).scalar_one()

        return {
            "logs": logs,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }
