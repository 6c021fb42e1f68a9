"""Users — profiles synced with the hosted auth service"""
import logging
import uuid
from datetime import date, datetime, time
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select, func, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.db.session import get_session
from dashboard.db.models import (
    User, UserRole, Project, ProjectStatus, Payment, PaymentStatus, ProjectFinancials,
    Conversation, Message, Notification, ServiceRequest, utcnow,
)
from dashboard.services.auth_admin import AuthAdminClient, AuthAdminError, get_auth_admin, display_name
from dashboard.services.notification_service import count_unread_for
from dashboard.services.payment_service import latest_financials
from dashboard.services.project_service import delete_project_tree
from dashboard.utils.formatters import user_out, iso, as_utc, truncate
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


class UserCreate(BaseModel):
    email: str
    password: str
    full_name: str
    phone: str | None = None
    role: UserRole = UserRole.CLIENT


class UserUpdate(BaseModel):
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    role: UserRole | None = None


async def _email_taken(db: AsyncSession, email: str, exclude_id: str | None = None) -> bool:
    query = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id:
        query = query.where(User.id != exclude_id)
    return (await db.execute(query)).first() is not None


async def _get_user_or_404(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = (await db.execute(select(User).where(User.id == str(user_id)))).scalar_one_or_none()
    if not user:
        raise HTTPException(404, "User not found")
    return user


async def _remove_auth_account(auth_admin: AuthAdminClient, user_id: str) -> bool:
    try:
        await auth_admin.delete_user(user_id)
        return True
    except AuthAdminError as e:
        logger.warning(f"Auth account {user_id} was not deleted: {e}")
        return False


async def sync_profiles(db: AsyncSession, auth_admin: AuthAdminClient) -> tuple[list[str], int]:
    """Create a client profile for every auth account that lacks one."""
    auth_users = await auth_admin.list_users()
    existing = set((await db.execute(select(User.id))).scalars().all())

    created = 0
    for au in auth_users:
        if au["id"] in existing:
            continue
        db.add(User(
            id=au["id"],
            email=au.get("email") or "",
            full_name=display_name(au),
            phone=au.get("phone") or None,
            role=UserRole.CLIENT.value,
        ))
        created += 1
    if created:
        await db.commit()
        logger.info(f"Created {created} missing user profiles")
    return [au["id"] for au in auth_users], created


@router.get("")
async def list_users(
    db: AsyncSession = Depends(get_session),
    auth_admin: AuthAdminClient | None = Depends(get_auth_admin),
    user: User = Depends(require_permission("users.view")),
):
    query = select(User).order_by(User.created_at.desc())
    created = 0
    if auth_admin is not None:
        try:
            auth_ids, created = await sync_profiles(db, auth_admin)
        except AuthAdminError as e:
            raise HTTPException(502, str(e))
        query = query.where(User.id.in_(auth_ids))

    users = (await db.execute(query)).scalars().all()
    return {
        "users": [user_out(u) for u in users],
        "count": len(users),
        "profiles_created": created,
    }


@router.post("", status_code=201)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_session),
    auth_admin: AuthAdminClient | None = Depends(get_auth_admin),
    user: User = Depends(require_permission("users.manage")),
):
    if await _email_taken(db, data.email):
        raise HTTPException(409, "A user with this email already exists")

    user_id = None
    if auth_admin is not None:
        try:
            auth_user = await auth_admin.create_user(data.email, data.password, {
                "full_name": data.full_name,
                "phone": data.phone,
                "role": data.role.value,
            })
        except AuthAdminError as e:
            if e.status_code == 422:
                raise HTTPException(409, "A user with this email already exists")
            raise HTTPException(502, str(e))
        user_id = auth_user["id"]

    profile = User(
        id=user_id or str(uuid.uuid4()),
        email=data.email,
        full_name=data.full_name,
        phone=data.phone,
        role=data.role.value,
    )
    db.add(profile)
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        if user_id:
            await _remove_auth_account(auth_admin, user_id)
        raise
    logger.info(f"User created: {profile.email} ({profile.role})")
    return {"success": True, "user": user_out(profile)}


@router.get("/{user_id}")
async def get_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("users.view")),
):
    profile = await _get_user_or_404(db, user_id)

    projects = (await db.execute(
        select(Project).where(Project.client_id == profile.id).order_by(Project.updated_at.desc())
    )).scalars().all()
    project_ids = [p.id for p in projects]

    payments, financials, conversations = [], [], []
    if project_ids:
        payments = (await db.execute(
            select(Payment).where(Payment.project_id.in_(project_ids))
            .order_by(Payment.created_at.desc())
        )).scalars().all()
        financials = (await db.execute(
            select(ProjectFinancials).where(ProjectFinancials.project_id.in_(project_ids))
        )).scalars().all()
        conversations = (await db.execute(
            select(Conversation).where(Conversation.project_id.in_(project_ids))
            .order_by(Conversation.last_message_at.desc())
        )).scalars().all()

    notification_count = (await db.execute(
        select(func.count(Notification.id)).where(Notification.user_id == profile.id)
    )).scalar() or 0

    latest = latest_financials(financials).values()
    completed = [p for p in payments if p.status == PaymentStatus.COMPLETED.value]

    activity = [as_utc(d) for d in (
        profile.updated_at,
        projects[0].updated_at if projects else None,
        conversations[0].last_message_at if conversations else None,
        payments[0].created_at if payments else None,
    ) if d]
    last_activity = max(activity) if activity else as_utc(profile.created_at)

    def count(status: ProjectStatus) -> int:
        return sum(1 for p in projects if p.status == status.value)

    return {
        "user": {**user_out(profile), "last_activity": iso(last_activity)},
        "stats": {
            "total_projects": len(projects),
            "active_projects": count(ProjectStatus.IN_PROGRESS),
            "completed_projects": count(ProjectStatus.COMPLETED),
            "on_hold_projects": count(ProjectStatus.ON_HOLD),
            "planning_projects": count(ProjectStatus.PLANNING),
            "total_contract_value": sum(p.contract_value or 0 for p in projects),
            "total_cash_received": sum(f.cash_received or 0 for f in latest),
            "total_amount_used": sum(f.amount_used or 0 for f in latest),
            "total_paid": sum(p.amount or 0 for p in completed),
            "payment_count": len(payments),
            "conversation_count": len(conversations),
            "notification_count": notification_count,
            "unread_notifications": await count_unread_for(db, profile.id),
            "last_activity": iso(last_activity),
        },
        "projects": [
            {
                "id": p.id,
                "project_name": p.project_name,
                "status": p.status,
                "progress_percentage": p.progress_percentage or 0,
                "current_phase": p.current_phase,
                "contract_value": p.contract_value,
            }
            for p in projects
        ],
    }


ACTIVITY_SOURCE_LIMIT = 20


def _moment(value: date | datetime | None) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    return as_utc(value)


def _activity(id: str, type: str, title: str, description: str | None, when, category: str,
              project: Project | None = None, **extra) -> dict:
    return {
        "id": id,
        "type": type,
        "title": title,
        "description": description or "",
        "project_name": project.project_name if project else None,
        "timestamp": _moment(when),
        "category": category,
        **extra,
    }


@router.get("/{user_id}/activity")
async def get_user_activity(
    user_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("users.view")),
):
    """Timeline of a user's payments, messages, requests and notifications, grouped by day."""
    profile = await _get_user_or_404(db, user_id)
    projects = {
        p.id: p for p in (await db.execute(
            select(Project).where(Project.client_id == profile.id)
        )).scalars().all()
    }

    activities = []
    if projects:
        payments = (await db.execute(
            select(Payment).where(Payment.project_id.in_(list(projects)))
            .order_by(Payment.created_at.desc()).limit(ACTIVITY_SOURCE_LIMIT)
        )).scalars().all()
        for p in payments:
            activities.append(_activity(
                p.id, "payment", f"Payment of {p.amount:,.2f}", p.description,
                p.payment_date or p.created_at, "Finance", projects.get(p.project_id),
                metadata={"amount": p.amount, "method": p.payment_method, "status": p.status},
            ))

    rows = (await db.execute(
        select(Message, Conversation)
        .join(Conversation, Message.conversation_id == Conversation.id)
        .where(Message.sender_id == profile.id)
        .order_by(Message.created_at.desc()).limit(ACTIVITY_SOURCE_LIMIT)
    )).all()
    for message, conv in rows:
        activities.append(_activity(
            message.id, "message", f"Message: {conv.conversation_name or 'Direct Message'}",
            truncate(message.message_text or ""), message.created_at, "Communication",
            projects.get(conv.project_id),
        ))

    requests = (await db.execute(
        select(ServiceRequest).where(ServiceRequest.client_id == profile.id)
        .order_by(ServiceRequest.created_at.desc()).limit(ACTIVITY_SOURCE_LIMIT)
    )).scalars().all()
    for r in requests:
        activities.append(_activity(
            r.id, "request", r.title, f"{r.request_type} - {r.status}", r.created_at, "Requests",
            projects.get(r.project_id),
        ))

    notifications = (await db.execute(
        select(Notification).where(Notification.user_id == profile.id)
        .order_by(Notification.created_at.desc()).limit(ACTIVITY_SOURCE_LIMIT)
    )).scalars().all()
    for n in notifications:
        activities.append(_activity(
            n.id, "notification", n.title, n.message, n.created_at, "Notifications",
            projects.get(n.project_id), is_read=bool(n.is_read),
        ))

    dated = sorted((a for a in activities if a["timestamp"]), key=lambda a: a["timestamp"], reverse=True)
    page = dated[offset:offset + limit]

    timeline: dict[str, list] = {}
    for a in page:
        timeline.setdefault(a["timestamp"].date().isoformat(), []).append(
            {**a, "timestamp": iso(a["timestamp"])}
        )
    return {
        "timeline": [{"date": day, "activities": items} for day, items in timeline.items()],
        "total_activities": len(dated),
        "has_more": len(dated) > offset + limit,
    }


@router.put("/{user_id}")
async def update_user(
    user_id: uuid.UUID,
    data: UserUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("users.manage")),
):
    if not data.email:
        raise HTTPException(400, "Email is required")

    profile = await _get_user_or_404(db, user_id)
    if await _email_taken(db, data.email, exclude_id=profile.id):
        raise HTTPException(409, "Email is already used by another user")

    profile.email = data.email
    if data.full_name is not None:
        profile.full_name = data.full_name
    if data.phone is not None:
        profile.phone = data.phone
    if data.role is not None:
        profile.role = data.role.value
    profile.updated_at = utcnow()
    await db.commit()
    return {"success": True, "user": user_out(profile)}


@router.delete("/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    force: bool = False,
    db: AsyncSession = Depends(get_session),
    auth_admin: AuthAdminClient | None = Depends(get_auth_admin),
    user: User = Depends(require_permission("users.manage")),
):
    profile = await _get_user_or_404(db, user_id)
    project_ids = (await db.execute(
        select(Project.id).where(Project.client_id == profile.id)
    )).scalars().all()

    if project_ids and not force:
        raise HTTPException(409, f"User owns {len(project_ids)} projects; pass force=true to delete them too")

    for project_id in project_ids:
        await delete_project_tree(db, project_id)
    # Messages they sent in other clients' conversations stay, without a sender
    messages = await db.execute(
        update(Message).where(Message.sender_id == profile.id).values(sender_id=None)
        .execution_options(synchronize_session=False)
    )
    notifications = await db.execute(
        delete(Notification).where(Notification.user_id == profile.id)
        .execution_options(synchronize_session=False)
    )
    await db.delete(profile)
    await db.commit()

    auth_deleted = False
    if auth_admin is not None:
        auth_deleted = await _remove_auth_account(auth_admin, profile.id)

    logger.info(f"User deleted: {profile.email}")
    return {
        "success": True,
        "deleted": {
            "user_id": profile.id,
            "email": profile.email,
            "projects": len(project_ids),
            "notifications": notifications.rowcount or 0,
            "messages_unlinked": messages.rowcount or 0,
            "auth_account": auth_deleted,
        },
    }
