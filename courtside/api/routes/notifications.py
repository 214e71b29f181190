"""Notification collaborator route handlers (outbox polling and delivery reports)."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import to_http_exception
from courtside.database.db import get_db_session
from courtside.database.models import NotificationChannel
from courtside.services import notification_service
from courtside.services.errors import MatchmakingError
from courtside.api.auth_dependencies import require_system_admin
from courtside.models.schemas import (
    NotificationEventResponse,
    DeliveryAttemptRequest,
    DeliveryAttemptResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/notifications/undelivered", response_model=List[NotificationEventResponse])
async def list_undelivered(
    channel: NotificationChannel,
    limit: int = 100,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Events not yet delivered on ``channel`` that still have retries left."""
    try:
        return await notification_service.list_undelivered_notifications(
            session, channel, limit=min(limit, 500)
        )
    except Exception as e:
        logger.error(f"Error listing undelivered notifications: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing notifications")


@router.post(
    "/api/notifications/{notification_id}/deliveries", response_model=DeliveryAttemptResponse
)
async def record_delivery(
    notification_id: int,
    payload: DeliveryAttemptRequest,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Record one delivery attempt for a notification."""
    try:
        return await notification_service.record_delivery_attempt(
            session, notification_id, payload.channel, payload.status, payload.error
        )
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error recording delivery for notification {notification_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error recording delivery")
