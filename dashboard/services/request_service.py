"""
Client service requests — statistics and the client-facing status notice.
"""
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.db.models import ServiceRequest, RequestStatus, RequestPriority, User, Project
from dashboard.services.notification_service import create_notification

logger = logging.getLogger(__name__)

REQUEST_TYPES = ("change_order", "inspection", "consultation", "maintenance", "other")
IN_PROGRESS_STATUSES = {RequestStatus.REVIEWING.value, RequestStatus.IN_PROGRESS.value}
DONE_STATUSES = {RequestStatus.COMPLETED.value, RequestStatus.APPROVED.value}


def request_stats(requests: list[ServiceRequest]) -> dict:
    return {
        "total": len(requests),
        "pending": sum(1 for r in requests if r.status == RequestStatus.SUBMITTED.value),
        "inProgress": sum(1 for r in requests if r.status in IN_PROGRESS_STATUSES),
        "completed": sum(1 for r in requests if r.status in DONE_STATUSES),
        "byCategory": {t: sum(1 for r in requests if r.request_type == t) for t in REQUEST_TYPES},
        "byPriority": {
            p.value: sum(1 for r in requests if r.priority == p.value) for p in RequestPriority
        },
    }


async def notify_status_change(session: AsyncSession, request: ServiceRequest, client: User | None,
                               project: Project | None, admin: User):
    """Tell the client their request moved; marked admin-initiated so staff feeds skip it."""
    if client is None:
        return None
    label = request.status.replace("_", " ")
    notif = await create_notification(
        session,
        client.id,
        "request_update",
        f"Request {label}: {request.title}",
        message=request.admin_response or "",
        entity_type="request",
        entity_id=request.id,
        project_id=project.id if project else None,
        meta={
            "request_id": request.id,
            "status": request.status,
            "admin_action": True,
            "initiated_by": admin.id,
            "source": "admin_dashboard",
        },
    )
    logger.info(f"Client {client.id} notified: request {request.id} is {request.status}")
    return notif
