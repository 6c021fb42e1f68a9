import logging
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.config import Settings
from dashboard.db.models import Notification, User, UserRole, PriorityLevel
from dashboard.services.notification_filter import NotificationFilter

logger = logging.getLogger(__name__)


async def create_notification(
    session: AsyncSession,
    user_id: str | None,
    notification_type: str,
    title: str,
    message: str = "",
    entity_type: str | None = None,
    entity_id: str | None = None,
    project_id: str | None = None,
    priority_level: str = PriorityLevel.NORMAL.value,
    action_url: str | None = None,
    conversation_id: str | None = None,
    meta: dict | None = None,
) -> Notification:
    notif = Notification(
        user_id=user_id,
        project_id=project_id,
        conversation_id=conversation_id,
        notification_type=notification_type,
        title=title,
        message=message,
        entity_type=entity_type,
        entity_id=entity_id,
        priority_level=priority_level,
        action_url=action_url,
        meta=meta or {},
    )
    session.add(notif)
    await session.flush()
    return notif


async def get_admin_user_ids(session: AsyncSession) -> frozenset[str]:
    result = await session.execute(select(User.id).where(User.role == UserRole.ADMIN.value))
    return frozenset(result.scalars().all())


async def build_filter(session: AsyncSession, settings: Settings, user: User) -> NotificationFilter:
    return NotificationFilter(
        current_user_id=user.id,
        admin_user_ids=await get_admin_user_ids(session),
        suppress_payments=settings.suppress_payment_notifications,
    )


def addressed_to(user_id: str):
    return or_(Notification.user_id == user_id, Notification.user_id.is_(None))


async def get_recent_notifications(session: AsyncSession, user_id: str, limit: int = 50,
                                   unread_only: bool = False) -> list[Notification]:
    query = select(Notification).where(addressed_to(user_id))
    if unread_only:
        query = query.where(Notification.is_read == False)
    query = query.order_by(Notification.created_at.desc()).limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_filtered_notifications(session: AsyncSession, settings: Settings, user: User,
                                     limit: int | None = None, unread_only: bool = False):
    """Latest notifications for an admin, split into kept and suppressed."""
    notif_filter = await build_filter(session, settings, user)
    notifs = await get_recent_notifications(
        session, user.id, limit or settings.notification_fetch_limit, unread_only,
    )
    kept, suppressed = notif_filter.partition(notifs)
    return notif_filter, notifs, kept, suppressed


async def get_unread_count(session: AsyncSession, settings: Settings, user: User) -> int:
    _, _, kept, _ = await get_filtered_notifications(session, settings, user, unread_only=True)
    return len(kept)


async def notify_admins(
    session: AsyncSession,
    sender: User | None,
    notification_type: str,
    title: str,
    message: str = "",
    **kwargs,
) -> list[Notification]:
    """One notification per admin. Nothing is created when the sender is an admin."""
    if sender is not None and sender.role == UserRole.ADMIN.value:
        return []

    result = await session.execute(select(User).where(User.role == UserRole.ADMIN.value))
    admins = result.scalars().all()

    created = []
    for admin in admins:
        created.append(await create_notification(
            session, admin.id, notification_type, title, message, **kwargs,
        ))
    logger.info(f"{notification_type}: notified {len(created)} admins")
    return created


async def count_unread_for(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,
        )
    )
    return result.scalar() or 0
