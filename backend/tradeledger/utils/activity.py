"""Lightweight helper for recording activity log entries.

Usage:
    await log_activity(
        db, user, action="created", entity_type="shipment",
        entity_id=shipment.id, entity_code=shipment.shipment_code,
        summary="Created shipment Spring toys",
    )

The row is added to the current session and committed with the
enclosing transaction, so an aborted command leaves no audit entry.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tradeledger.models.activity_log import ActivityLog
from tradeledger.models.user import User


async def log_activity(
    db: AsyncSession,
    user: User,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    entity_code: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        user_id=user.id,
        user_name=user.full_name,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_code=entity_code,
        summary=summary,
        details=details,
    )
    db.add(entry)
