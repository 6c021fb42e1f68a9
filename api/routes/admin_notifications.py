"""Admin notifications — staff alerts with read / acknowledge / dismiss tracking"""
import logging
import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.db.session import get_session
from dashboard.db.models import (
    AdminNotification, AdminNotificationCategory, AdminNotificationPriority, User, utcnow,
)
from dashboard.utils.formatters import iso, as_utc
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/notifications", tags=["admin-notifications"])


class CreateNotificationData(BaseModel):
    type: str
    category: AdminNotificationCategory
    priority: AdminNotificationPriority = AdminNotificationPriority.MEDIUM
    title: str
    message: str
    action_required: bool = False
    action_type: str | None = None
    entity_type: str
    entity_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    expires_at: datetime | None = None
    metadata: dict = {}


class NotificationAction(BaseModel):
    action: str


class BulkAction(BaseModel):
    action: str
    ids: list[uuid.UUID] | None = None


def _out(n: AdminNotification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "category": n.category,
        "priority": n.priority,
        "title": n.title,
        "message": n.message,
        "action_required": bool(n.action_required),
        "action_type": n.action_type,
        "entity_type": n.entity_type,
        "entity_id": n.entity_id,
        "project_id": n.project_id,
        "user_id": n.user_id,
        "is_read": bool(n.is_read),
        "is_dismissed": bool(n.is_dismissed),
        "is_acknowledged": bool(n.is_acknowledged),
        "read_at": iso(n.read_at),
        "read_by_admin": n.read_by_admin,
        "acknowledged_at": iso(n.acknowledged_at),
        "dismissed_at": iso(n.dismissed_at),
        "created_at": iso(n.created_at),
        "updated_at": iso(n.updated_at),
        "expires_at": iso(n.expires_at),
        "metadata": n.meta or {},
    }


def notification_stats(notifs: list[AdminNotification], now: datetime | None = None) -> dict:
    now = now or utcnow()
    unread = [n for n in notifs if not n.is_read and not n.is_dismissed]
    pending_actions = [n for n in notifs if n.action_required and not n.is_acknowledged]

    by_category = {c.value: 0 for c in AdminNotificationCategory}
    for n in unread:
        by_category[n.category] = by_category.get(n.category, 0) + 1

    return {
        "total_unread": len(unread),
        "critical_unread": sum(1 for n in unread if n.priority == AdminNotificationPriority.CRITICAL.value),
        "high_unread": sum(1 for n in unread if n.priority == AdminNotificationPriority.HIGH.value),
        "action_required_count": len(pending_actions),
        "overdue_actions": sum(
            1 for n in pending_actions if n.expires_at and as_utc(n.expires_at) < now
        ),
        "by_category": by_category,
    }


@router.get("")
async def list_admin_notifications(
    category: str | None = None,
    priority: str | None = None,
    include_dismissed: bool = False,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.view")),
):
    query = select(AdminNotification).order_by(AdminNotification.created_at.desc())
    if category:
        query = query.where(AdminNotification.category == category)
    if priority:
        query = query.where(AdminNotification.priority == priority)
    if not include_dismissed:
        query = query.where(AdminNotification.is_dismissed == False)
    notifs = (await db.execute(query)).scalars().all()

    everything = (await db.execute(select(AdminNotification))).scalars().all()
    return {
        "notifications": [_out(n) for n in notifs],
        "stats": notification_stats(everything),
    }


@router.post("", status_code=201)
async def create_admin_notification(
    data: CreateNotificationData,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.manage")),
):
    notif = AdminNotification(
        type=data.type,
        category=data.category.value,
        priority=data.priority.value,
        title=data.title,
        message=data.message,
        action_required=data.action_required,
        action_type=data.action_type,
        entity_type=data.entity_type,
        entity_id=str(data.entity_id) if data.entity_id else None,
        project_id=str(data.project_id) if data.project_id else None,
        user_id=str(data.user_id) if data.user_id else None,
        expires_at=data.expires_at,
        meta=data.metadata,
    )
    db.add(notif)
    await db.commit()
    logger.info(f"Admin notification created: {notif.type} ({notif.priority})")
    return {"success": True, "notification": _out(notif)}


@router.patch("/bulk")
async def bulk_update(
    data: BulkAction,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.manage")),
):
    now = utcnow()
    if data.action == "mark_all_read":
        values = {"is_read": True, "read_at": now, "read_by_admin": user.id}
    elif data.action == "dismiss_all":
        values = {"is_dismissed": True, "dismissed_at": now}
    else:
        raise HTTPException(400, f"Invalid bulk action: {data.action}")
    values["updated_at"] = now

    query = update(AdminNotification).values(**values)
    if data.ids:
        query = query.where(AdminNotification.id.in_([str(i) for i in data.ids]))
    else:
        query = query.where(AdminNotification.is_read == False, AdminNotification.is_dismissed == False)

    result = await db.execute(query.execution_options(synchronize_session=False))
    await db.commit()
    logger.info(f"Bulk {data.action}: {result.rowcount} admin notifications")
    return {"success": True, "action": data.action, "updated_count": result.rowcount or 0}


async def _get_or_404(db: AsyncSession, notification_id: uuid.UUID) -> AdminNotification:
    notif = (await db.execute(
        select(AdminNotification).where(AdminNotification.id == str(notification_id))
    )).scalar_one_or_none()
    if not notif:
        raise HTTPException(404, "Notification not found")
    return notif


@router.patch("/{notification_id}")
async def update_admin_notification(
    notification_id: uuid.UUID,
    data: NotificationAction,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.manage")),
):
    notif = await _get_or_404(db, notification_id)
    now = utcnow()

    if data.action == "mark_read":
        notif.is_read = True
        notif.read_at = now
        notif.read_by_admin = user.id
    elif data.action == "acknowledge":
        notif.is_acknowledged = True
        notif.acknowledged_at = now
    elif data.action == "dismiss":
        notif.is_dismissed = True
        notif.dismissed_at = now
    else:
        raise HTTPException(400, f"Invalid action: {data.action}")

    notif.updated_at = now
    await db.commit()
    return {"success": True, "notification": _out(notif)}


@router.delete("/{notification_id}")
async def delete_admin_notification(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("notifications.manage")),
):
    notif = await _get_or_404(db, notification_id)
    await db.delete(notif)
    await db.commit()
    return {"success": True}
