"""In-app notifications.

Endpoints:
    GET   /api/notifications                         Own + broadcast notifications
    POST  /api/notifications/check-due-collections   Raise due/overdue reminders now
    PUT   /api/notifications/{id}/read               Mark read
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.auth.deps import get_current_user, require_permission
from tradeledger.database import get_db
from tradeledger.models.user import User
from tradeledger.schemas.local_trade import NotificationOut, ReminderCheckOut
from tradeledger.services import local_trade as svc

router = APIRouter()


@router.get("/", response_model=list[NotificationOut])
async def list_notifications(
    unread_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await svc.list_notifications(db, user, unread_only=unread_only)


@router.post("/check-due-collections", response_model=ReminderCheckOut)
async def check_due_collections(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("parties.read")),
):
    """Same check the daily scheduler runs; reminders already raised today
    are not repeated."""
    return ReminderCheckOut(created=await svc.check_due_collections(db))


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return await svc.mark_notification_read(db, notification_id)
