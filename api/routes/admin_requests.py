"""Client service requests — review queue, status updates, admin assignment"""
import logging
import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.db.session import get_session
from dashboard.db.models import (
    ServiceRequest, RequestStatus, RequestPriority, User, UserRole, Project, utcnow,
)
from dashboard.services.request_service import request_stats, notify_status_change
from dashboard.utils.formatters import iso, user_brief
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/requests", tags=["admin-requests"])


class RequestUpdate(BaseModel):
    status: RequestStatus | None = None
    priority: RequestPriority | None = None
    admin_response: str | None = None
    estimated_cost: float | None = None
    response_date: datetime | None = None


class AssignRequest(BaseModel):
    admin_id: uuid.UUID
    notes: str | None = None


def _project_brief(p: Project | None) -> dict | None:
    if p is None:
        return None
    return {
        "id": p.id,
        "project_name": p.project_name,
        "project_address": p.project_address,
        "status": p.status,
        "current_phase": p.current_phase,
        "progress_percentage": p.progress_percentage or 0,
    }


def _out(r: ServiceRequest, client: User | None = None, project: Project | None = None) -> dict:
    return {
        "id": r.id,
        "project_id": r.project_id,
        "client_id": r.client_id,
        "request_type": r.request_type,
        "category": r.category,
        "subcategory": r.subcategory,
        "title": r.title,
        "description": r.description,
        "address": r.address,
        "plan_urls": r.plan_urls or [],
        "priority": r.priority,
        "status": r.status,
        "submitted_date": iso(r.submitted_date),
        "response_date": iso(r.response_date),
        "admin_response": r.admin_response,
        "admin_notes": r.admin_notes,
        "estimated_cost": r.estimated_cost,
        "assigned_to": r.assigned_to,
        "request_data": r.request_data or {},
        "created_at": iso(r.created_at),
        "updated_at": iso(r.updated_at),
        "client": user_brief(client),
        "project": _project_brief(project),
    }


async def _related(db: AsyncSession, requests: list[ServiceRequest]) -> tuple[dict, dict]:
    """Clients and projects by id; the requests table carries no foreign keys."""
    client_ids = {r.client_id for r in requests if r.client_id}
    project_ids = {r.project_id for r in requests if r.project_id}
    clients, projects = {}, {}
    if client_ids:
        rows = (await db.execute(select(User).where(User.id.in_(client_ids)))).scalars().all()
        clients = {u.id: u for u in rows}
    if project_ids:
        rows = (await db.execute(select(Project).where(Project.id.in_(project_ids)))).scalars().all()
        projects = {p.id: p for p in rows}
    return clients, projects


async def _get_request_or_404(db: AsyncSession, request_id: uuid.UUID) -> ServiceRequest:
    req = (await db.execute(
        select(ServiceRequest).where(ServiceRequest.id == str(request_id))
    )).scalar_one_or_none()
    if not req:
        raise HTTPException(404, "Request not found")
    return req


@router.get("")
async def list_requests(
    status: str | None = None,
    category: str | None = None,
    priority: str | None = None,
    project_id: uuid.UUID | None = None,
    client_id: uuid.UUID | None = None,
    assigned_to: uuid.UUID | None = None,
    search: str | None = None,
    include_stats: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("requests.view")),
):
    filters = []
    if status:
        filters.append(ServiceRequest.status == status)
    if category:
        filters.append(ServiceRequest.category == category)
    if priority:
        filters.append(ServiceRequest.priority == priority)
    if project_id:
        filters.append(ServiceRequest.project_id == str(project_id))
    if client_id:
        filters.append(ServiceRequest.client_id == str(client_id))
    if assigned_to:
        filters.append(ServiceRequest.assigned_to == str(assigned_to))
    if search:
        pattern = f"%{search}%"
        filters.append(or_(ServiceRequest.title.ilike(pattern), ServiceRequest.description.ilike(pattern)))

    total = (await db.execute(select(func.count(ServiceRequest.id)).where(*filters))).scalar() or 0
    requests = (await db.execute(
        select(ServiceRequest).where(*filters)
        .order_by(ServiceRequest.created_at.desc())
        .offset((page - 1) * limit).limit(limit)
    )).scalars().all()
    clients, projects = await _related(db, requests)

    stats = None
    if include_stats:
        stats = request_stats((await db.execute(select(ServiceRequest))).scalars().all())

    pages = (total + limit - 1) // limit
    return {
        "requests": [_out(r, clients.get(r.client_id), projects.get(r.project_id)) for r in requests],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": pages,
            "has_next": page < pages,
            "has_prev": page > 1,
        },
        "stats": stats,
    }


@router.get("/{request_id}")
async def get_request(
    request_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("requests.view")),
):
    req = await _get_request_or_404(db, request_id)
    clients, projects = await _related(db, [req])
    return {"request": _out(req, clients.get(req.client_id), projects.get(req.project_id))}


@router.patch("/{request_id}")
async def update_request(
    request_id: uuid.UUID,
    data: RequestUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("requests.manage")),
):
    req = await _get_request_or_404(db, request_id)
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "No fields to update")

    previous_status = req.status
    for field, value in changes.items():
        setattr(req, field, value.value if isinstance(value, (RequestStatus, RequestPriority)) else value)
    if data.status is not None and data.response_date is None:
        req.response_date = utcnow()
    req.updated_at = utcnow()

    clients, projects = await _related(db, [req])
    client, project = clients.get(req.client_id), projects.get(req.project_id)
    if req.status != previous_status:
        await notify_status_change(db, req, client, project, user)
    await db.commit()
    logger.info(f"Request {req.id} updated: {sorted(changes)}")
    return {"success": True, "request": _out(req, client, project)}


@router.post("/{request_id}/assign")
async def assign_request(
    request_id: uuid.UUID,
    data: AssignRequest,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("requests.manage")),
):
    req = await _get_request_or_404(db, request_id)
    admin = (await db.execute(select(User).where(User.id == str(data.admin_id)))).scalar_one_or_none()
    if not admin or admin.role != UserRole.ADMIN.value:
        raise HTTPException(400, "Requests can only be assigned to an admin")

    req.assigned_to = admin.id
    if data.notes:
        req.admin_notes = data.notes
    req.updated_at = utcnow()
    await db.commit()
    logger.info(f"Request {req.id} assigned to {admin.email}")
    clients, projects = await _related(db, [req])
    return {"success": True, "request": _out(req, clients.get(req.client_id), projects.get(req.project_id))}
