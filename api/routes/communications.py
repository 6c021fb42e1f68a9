"""Communications — conversations, messages, broadcasts"""
import logging
import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from dashboard.db.session import get_session
from dashboard.db.models import (
    Conversation, Message, Project, User, UserRole, PriorityLevel, utcnow,
)
from dashboard.services.notification_service import create_notification, notify_admins
from dashboard.utils.formatters import iso, truncate, format_attachments
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/communications", tags=["communications"])


class MessageCreate(BaseModel):
    content: str
    message_type: str = "text"
    attachment_urls: list[str] = []


class InboundMessage(BaseModel):
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    message_text: str
    message_type: str = "text"
    attachment_urls: list[str] = []


class Broadcast(BaseModel):
    subject: str
    message: str
    target_audience: str = "all"
    priority: PriorityLevel = PriorityLevel.NORMAL
    schedule_date: datetime | None = None


def is_unread_by(message: Message, user_id: str) -> bool:
    return user_id not in (message.read_by or {}) and message.sender_id != user_id


def mark_read_by(message: Message, user_id: str, at: datetime):
    # JSON columns only notice reassignment
    message.read_by = {**(message.read_by or {}), user_id: at.isoformat()}


def _message_out(m: Message) -> dict:
    sender = m.sender
    return {
        "id": m.id,
        "content": m.message_text,
        "sender_id": m.sender_id,
        "sender_name": sender.full_name if sender else "Unknown User",
        "sender_role": sender.role if sender else "user",
        "sender_avatar": sender.profile_photo_url if sender else None,
        "sent_at": iso(m.created_at),
        "is_read": bool(m.read_by),
        "read_by": m.read_by or {},
        "message_type": m.message_type or "text",
        "attachments": format_attachments(m.id, m.attachment_urls),
        "reply_to": m.reply_to_id,
        "is_edited": bool(m.is_edited),
        "edited_at": iso(m.edited_at),
        "reactions": m.reactions or {},
        "metadata": m.meta or {},
    }


def _conversation_out(c: Conversation, user_id: str) -> dict:
    project = c.project
    messages = c.messages
    return {
        "id": c.id,
        "name": c.conversation_name,
        "project_id": c.project_id,
        "project_name": project.project_name if project else None,
        "client_name": project.client.full_name if project and project.client else None,
        "participants": c.participants or [],
        "last_message": messages[-1].message_text if messages else "",
        "last_message_at": iso(c.last_message_at),
        "message_count": len(messages),
        "unread_count": sum(1 for m in messages if is_unread_by(m, user_id)),
        "status": "archived" if c.is_archived else "active",
        "priority": c.priority_level or "medium",
    }


async def _get_conversation_or_404(db: AsyncSession, conversation_id) -> Conversation:
    conv = (await db.execute(
        select(Conversation)
        .options(
            selectinload(Conversation.project).selectinload(Project.client),
            selectinload(Conversation.messages).selectinload(Message.sender),
        )
        .where(Conversation.id == str(conversation_id))
    )).scalar_one_or_none()
    if not conv:
        raise HTTPException(404, "Conversation not found")
    return conv


@router.get("")
async def get_communications(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("messages.view")),
):
    total_conversations = (await db.execute(select(func.count(Conversation.id)))).scalar() or 0
    all_messages = (await db.execute(select(Message))).scalars().all()

    conversations = (await db.execute(
        select(Conversation)
        .options(
            selectinload(Conversation.project).selectinload(Project.client),
            selectinload(Conversation.messages),
        )
        .order_by(Conversation.last_message_at.desc().nullslast())
        .offset(offset).limit(limit)
    )).scalars().all()

    return {
        "stats": {
            "totalConversations": total_conversations,
            "totalMessages": len(all_messages),
            "unreadMessages": sum(1 for m in all_messages if is_unread_by(m, user.id)),
            "activeConversations": sum(1 for c in conversations if not c.is_archived),
        },
        "conversations": [_conversation_out(c, user.id) for c in conversations],
        "pagination": {"limit": limit, "offset": offset, "total": total_conversations},
    }


@router.get("/conversations/{conversation_id}/messages")
async def get_messages(
    conversation_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("messages.view")),
):
    conv = await _get_conversation_or_404(db, conversation_id)
    return {
        "conversation": _conversation_out(conv, user.id),
        "messages": [_message_out(m) for m in conv.messages],
    }


@router.post("/conversations/{conversation_id}/messages", status_code=201)
async def send_message(
    conversation_id: uuid.UUID,
    data: MessageCreate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("messages.send")),
):
    if not data.content.strip():
        raise HTTPException(400, "Message content is required")
    conv = await _get_conversation_or_404(db, conversation_id)

    now = utcnow()
    message = Message(
        conversation_id=conv.id,
        sender_id=user.id,
        message_text=data.content,
        message_type=data.message_type or "text",
        attachment_urls=data.attachment_urls,
        read_by={},
        reactions={},
        meta={
            "source": "admin_dashboard",
            "from_admin": True,
            "sender_id": user.id,
            "timestamp": now.isoformat(),
        },
        created_at=now,
    )
    message.sender = user
    db.add(message)
    conv.last_message_at = now
    await db.commit()
    return {"success": True, "message": _message_out(message)}


@router.post("/inbound", status_code=201)
async def receive_message(
    data: InboundMessage,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("messages.send")),
):
    """Record a message sent from the mobile app and alert the admins."""
    conv = await _get_conversation_or_404(db, data.conversation_id)
    sender = (await db.execute(
        select(User).where(User.id == str(data.sender_id))
    )).scalar_one_or_none()
    if not sender:
        raise HTTPException(404, "Sender not found")

    now = utcnow()
    message = Message(
        conversation_id=conv.id,
        sender_id=sender.id,
        message_text=data.message_text,
        message_type=data.message_type or "text",
        attachment_urls=data.attachment_urls,
        read_by={},
        reactions={},
        meta={"source": "mobile_app", "timestamp": now.isoformat()},
        created_at=now,
    )
    message.sender = sender
    db.add(message)
    conv.last_message_at = now
    await db.flush()

    project_name = conv.project.project_name if conv.project else None
    conversation_name = conv.conversation_name or "General"
    title = (
        f"New message in {project_name} - {conversation_name}"
        if project_name else f"New message from {sender.full_name or 'Mobile User'}"
    )

    notified = []
    try:
        async with db.begin_nested():
            notified = await notify_admins(
                db, sender, "message", title, truncate(data.message_text, 100),
                entity_type="message",
                entity_id=message.id,
                project_id=conv.project_id,
                conversation_id=conv.id,
                action_url=f"/communications?conversation={conv.id}",
                meta={
                    "message_id": message.id,
                    "sender_id": sender.id,
                    "sender_name": sender.full_name or "Mobile User",
                    "conversation_id": conv.id,
                    "conversation_name": conversation_name,
                    "project_id": conv.project_id,
                    "project_name": project_name,
                    "message_type": message.message_type,
                    "source": "mobile_app_via_communications_api",
                },
            )
    except SQLAlchemyError as e:
        logger.warning(f"Message {message.id} saved but admin notifications failed: {e}")
        notified = []

    await db.commit()
    return {"success": True, "message": _message_out(message), "notified_admins": len(notified)}


@router.post("/conversations/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("messages.view")),
):
    conv = await _get_conversation_or_404(db, conversation_id)
    now = utcnow()
    for m in conv.messages:
        mark_read_by(m, user.id, now)
    await db.commit()
    return {"success": True, "marked": len(conv.messages)}


@router.post("/messages/{message_id}/read")
async def mark_message_read(
    message_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("messages.view")),
):
    message = (await db.execute(
        select(Message).where(Message.id == str(message_id))
    )).scalar_one_or_none()
    if not message:
        raise HTTPException(404, "Message not found")
    mark_read_by(message, user.id, utcnow())
    await db.commit()
    return {"success": True, "read_by": message.read_by}


@router.post("/broadcast", status_code=201)
async def broadcast(
    data: Broadcast,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("messages.broadcast")),
):
    if not data.subject.strip() or not data.message.strip():
        raise HTTPException(400, "Subject and message are required")

    query = select(User.id)
    audience = data.target_audience.strip().lower()
    if audience and audience != "all":
        role = audience[:-1] if audience.endswith("s") else audience
        if role not in {r.value for r in UserRole}:
            raise HTTPException(400, f"Unknown audience: {data.target_audience}")
        query = query.where(User.role == role)
    recipients = (await db.execute(query)).scalars().all()

    for recipient_id in recipients:
        notif = await create_notification(
            db, recipient_id, "general", data.subject, data.message,
            priority_level=data.priority.value,
            meta={
                "created_by": "admin",
                "admin_action": True,
                "initiated_by": user.id,
                "sender_id": user.id,
                "source": "admin_dashboard",
                "broadcast": True,
                "target_audience": audience or "all",
            },
        )
        if data.schedule_date:
            notif.created_at = data.schedule_date
    await db.commit()

    logger.info(f"Broadcast '{data.subject}' sent to {len(recipients)} users ({audience or 'all'})")
    return {
        "success": True,
        "recipients": len(recipients),
        "message": f"Broadcast sent to {len(recipients)} users",
    }
