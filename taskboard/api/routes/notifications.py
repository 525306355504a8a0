import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from taskboard.api.deps import get_inbox
from taskboard.core import config
from taskboard.core.notifications import NotificationInbox
from taskboard.schemas.notification import NotificationRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("/{user_id}", response_model=List[NotificationRead])
async def list_notifications(
    user_id: str,
    limit: int = Query(50, ge=1, le=config.NOTIFICATION_HISTORY_LIMIT),
    inbox: NotificationInbox = Depends(get_inbox),
):
    """Most recent notifications for the user, newest first."""
    return await inbox.recent(user_id, limit)


@router.put("/{user_id}/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(
    user_id: str,
    notification_id: str,
    inbox: NotificationInbox = Depends(get_inbox),
):
    return await inbox.mark_read(user_id, notification_id)
