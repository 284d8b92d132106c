"""Notification sink for parents and admins."""

import logging
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sniperzone.models import Notification

logger = logging.getLogger(__name__)

ADMIN_USER_ID = "admin"


class NotificationSink(Protocol):
    async def notify(
        self,
        user_id: str,
        user_type: str,
        type: str,
        title: str,
        message: str,
        priority: str = "normal",
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...


class DbNotificationSink:
    """Writes notifications to the ``notifications`` table.

    Called after the primary operation has committed. A failure here is
    logged and never reaches the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        user_id: str,
        user_type: str,
        type: str,
        title: str,
        message: str,
        priority: str = "normal",
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            self.db.add(
                Notification(
                    user_id=user_id,
                    user_type=user_type,
                    type=type,
                    title=title,
                    message=message,
                    priority=priority,
                    data=data,
                )
            )
            await self.db.commit()
            logger.info(f"🔔 Notification '{type}' queued for {user_type} {user_id}")
        except Exception as e:
            logger.error(f"❌ Failed to create notification '{type}' for {user_id}: {e}")
            await self.db.rollback()

    async def notify_admin(self, type: str, title: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        await self.notify(ADMIN_USER_ID, "admin", type, title, message, "normal", data)


async def list_notifications(db: AsyncSession, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    """Newest notifications for a user."""
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit))
    return list(result.scalars().all())
