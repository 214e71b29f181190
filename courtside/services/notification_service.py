"""
Notification service: the boundary to the notification collaborator.

The reservation core only emits logical events ({type, match_id,
affected_user_ids, payload}) as ``notifications`` rows inside the caller's
transaction. Channel selection, delivery and retries belong to the
collaborator, which polls undelivered events and records each attempt in the
append-only ``notification_deliveries`` table.
"""

from typing import Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from courtside.database.models import (
    Notification,
    NotificationDelivery,
    NotificationType,
    NotificationChannel,
    DeliveryStatus,
)
from courtside.services.errors import NotFound, MatchmakingError
from courtside.utils.constants import MAX_DELIVERY_RETRIES
from courtside.utils.datetime_utils import utcnow, to_iso
import json
import logging

logger = logging.getLogger(__name__)


def notification_to_dict(notification: Notification) -> Dict:
    """Serialize a notification row for the API."""
    return {
        "id": notification.id,
        "type": notification.type,
        "match_id": notification.match_id,
        "affected_user_ids": notification.user_ids,
        "payload": notification.data,
        "created_at": to_iso(notification.created_at),
    }


async def emit_event(
    session: AsyncSession,
    type: NotificationType,
    match_id: Optional[int],
    affected_user_ids: Iterable[int],
    payload: Optional[Dict] = None,
) -> Optional[Notification]:
    """
    Record a domain event for the notification collaborator.

    The row is flushed in the caller's transaction, so it is committed or
    rolled back together with the state change it describes.

    Args:
        session: Database session
        type: Event type
        match_id: Match the event concerns
        affected_user_ids: Users to notify (duplicates and None are dropped)
        payload: Optional JSON metadata

    Returns:
        The Notification row, or None if nobody is affected
    """
    user_ids = sorted({uid for uid in affected_user_ids if uid is not None})
    if not user_ids:
        logger.debug(f"Skipping {type.value} event for match {match_id}: no recipients")
        return None

    notification = Notification(
        type=type.value,
        match_id=match_id,
        affected_user_ids=json.dumps(user_ids),
        payload=json.dumps(payload) if payload is not None else None,
    )
    session.add(notification)
    await session.flush()

    logger.info(f"Emitted {type.value} event for match {match_id} to users {user_ids}")
    return notification


async def list_undelivered_notifications(
    session: AsyncSession,
    channel: NotificationChannel,
    limit: int = 100,
) -> List[Dict]:
    """
    Events with no successful delivery on ``channel`` and retries left.

    Args:
        session: Database session
        channel: Delivery channel the collaborator is draining
        limit: Maximum events returned, oldest first

    Returns:
        List of notification dicts, each with ``attempts`` made so far
    """
    sent = (
        select(NotificationDelivery.notification_id)
        .where(
            and_(
                NotificationDelivery.channel == channel,
                NotificationDelivery.status == DeliveryStatus.SENT,
            )
        )
    )
    attempts = (
        select(
            NotificationDelivery.notification_id.label("notification_id"),
            func.count(NotificationDelivery.id).label("attempts"),
        )
        .where(NotificationDelivery.channel == channel)
        .group_by(NotificationDelivery.notification_id)
        .subquery()
    )
    attempt_count = func.coalesce(attempts.c.attempts, 0)

    result = await session.execute(
        select(Notification, attempt_count)
        .outerjoin(attempts, attempts.c.notification_id == Notification.id)
        .where(
            and_(
                Notification.id.not_in(sent),
                attempt_count < MAX_DELIVERY_RETRIES,
            )
        )
        .order_by(Notification.created_at, Notification.id)
        .limit(limit)
    )

    notifications = []
    for notification, count in result.all():
        data = notification_to_dict(notification)
        data["attempts"] = count
        notifications.append(data)
    return notifications


async def record_delivery_attempt(
    session: AsyncSession,
    notification_id: int,
    channel: NotificationChannel,
    status: DeliveryStatus,
    error: Optional[str] = None,
) -> Dict:
    """
    Append one delivery attempt for (notification, channel).

    ``retry_count`` is 0 for the first attempt and grows by one per attempt.
    Once a channel has succeeded, or has used up MAX_DELIVERY_RETRIES attempts,
    further attempts are refused.

    Args:
        session: Database session
        notification_id: Notification being delivered
        channel: Channel used
        status: SENT or FAILED
        error: Failure description for FAILED attempts

    Returns:
        Dict with the recorded delivery

    Raises:
        NotFound: If the notification does not exist
        MatchmakingError: If the channel is already delivered or exhausted
    """
    notification = await session.get(Notification, notification_id)
    if not notification:
        raise NotFound(f"Notification {notification_id} not found")

    result = await session.execute(
        select(NotificationDelivery)
        .where(
            and_(
                NotificationDelivery.notification_id == notification_id,
                NotificationDelivery.channel == channel,
            )
        )
        .order_by(NotificationDelivery.retry_count)
    )
    previous = result.scalars().all()

    if any(d.status == DeliveryStatus.SENT for d in previous):
        raise MatchmakingError(
            f"Notification {notification_id} already delivered via {channel.value}"
        )
    if len(previous) >= MAX_DELIVERY_RETRIES:
        raise MatchmakingError(
            f"Notification {notification_id} exhausted {MAX_DELIVERY_RETRIES} attempts via {channel.value}"
        )

    delivery = NotificationDelivery(
        notification_id=notification_id,
        channel=channel,
        status=status,
        retry_count=len(previous),
        error=error if status == DeliveryStatus.FAILED else None,
        sent_at=utcnow() if status == DeliveryStatus.SENT else None,
    )
    session.add(delivery)
    await session.flush()

    if status == DeliveryStatus.FAILED:
        logger.warning(
            f"Delivery of notification {notification_id} via {channel.value} failed "
            f"(attempt {delivery.retry_count + 1}/{MAX_DELIVERY_RETRIES}): {error}"
        )

    return {
        "id": delivery.id,
        "notification_id": notification_id,
        "channel": channel.value,
        "status": status.value,
        "retry_count": delivery.retry_count,
        "error": delivery.error,
        "sent_at": to_iso(delivery.sent_at),
    }
