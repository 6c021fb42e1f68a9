"""Platform notifications — the admin's filtered feed"""
import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.config import get_settings
from dashboard.db.session import get_session
from dashboard.db.models import Notification, User, utcnow
from dashboard.services.notification_filter import alert_style, select_new
from dashboard.services.notification_service import get_filtered_notifications, addressed_to
from dashboard.utils.formatters import notification_out
from api.routes.auth import require_permission

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _feed_item(n: Notification, notif_filter) -> dict:
    return {
        **notification_out(n),
        "alert_style": alert_style(n.priority_level),
        "should_alert": notif_filter.should_alert(n),
    }


@router.get("")
async def list_notifications(
    limit: int | None = Query(None, ge=1, le=500),
    unread_only: bool = False,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.view")),
):
    settings = get_settings()
    notif_filter, notifs, kept, suppressed = await get_filtered_notifications(
        db, settings, user, limit, unread_only,
    )
    return {
        "notifications": [_feed_item(n, notif_filter) for n in kept],
        "unread_count": sum(1 for n in kept if not n.is_read),
        "total": len(notifs),
        "filtered_out": len(suppressed),
    }


@router.get("/updates")
async def poll_updates(
    since: datetime | None = None,
    seen: str = "",
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.view")),
):
    settings = get_settings()
    notif_filter, _, kept, _ = await get_filtered_notifications(db, settings, user)
    seen_ids = [s.strip() for s in seen.split(",") if s.strip()]
    fresh = select_new(kept, seen_ids, since, user.id)
    return {
        "notifications": [_feed_item(n, notif_filter) for n in fresh],
        "count": len(fresh),
        "checked_at": utcnow().isoformat(),
    }


@router.get("/summary")
async def notifications_summary(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.view")),
):
    settings = get_settings()
    _, _, kept, _ = await get_filtered_notifications(db, settings, user, unread_only=True)

    by_type: dict[str, int] = {}
    by_priority: dict[str, int] = {}
    for n in kept:
        by_type[n.notification_type] = by_type.get(n.notification_type, 0) + 1
        priority = n.priority_level or "normal"
        by_priority[priority] = by_priority.get(priority, 0) + 1

    return {"total_unread": len(kept), "by_type": by_type, "by_priority": by_priority}


@router.post("/read-all")
async def mark_all_read(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.view")),
):
    result = await db.execute(
        update(Notification)
        .where(addressed_to(user.id), Notification.is_read == False)
        .values(is_read=True, read_at=utcnow())
    )
    await db.commit()
    return {"success": True, "updated_count": result.rowcount or 0}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.view")),
):
    notif = (await db.execute(
        select(Notification).where(Notification.id == str(notification_id))
    )).scalar_one_or_none()
    if not notif:
        raise HTTPException(404, "Notification not found")

    notif.is_read = True
    notif.read_at = utcnow()
    await db.commit()
    return {"success": True, "notification": notification_out(notif)}
