"""Broadcast communication history."""
import uuid
from typing import List

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.schemas import CommunicationCreate
from database.models import Communication, utcnow

logger = structlog.get_logger(__name__)


async def record_communication(
    db: AsyncSession, payload: CommunicationCreate, sent_by: uuid.UUID
) -> Communication:
    """
    Save a sent broadcast to history.

    Args:
        db: Database session
        payload: Validated communication
        sent_by: Admin who sent it

    Returns:
        Communication: Stored record
    """
    communication = Communication(
        recipient_type=payload.recipient_type,
        recipient_count=payload.recipient_count,
        selected_tenants=payload.selected_tenants,
        subject=payload.subject,
        message=payload.message,
        sent_by=sent_by,
        sent_at=utcnow(),
    )
    db.add(communication)
    await db.commit()

    logger.info(
        "communication_recorded",
        communication_id=str(communication.id),
        recipient_type=communication.recipient_type,
        recipient_count=communication.recipient_count,
    )
    return communication


async def recent_communications(db: AsyncSession, limit: int = 20) -> List[Communication]:
    """Most recently sent broadcasts, newest first."""
    stmt = select(Communication).order_by(Communication.sent_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
