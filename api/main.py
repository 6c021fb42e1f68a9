import logging
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.config import get_settings
from dashboard.db.session import get_session, init_db
from dashboard.db.models import (
    User, UserRole, Project, ProjectStatus, Payment, PaymentStatus,
    Delivery, DeliveryStatus, ProjectContractor, ContractStatus, ServiceRequest, RequestStatus,
)
from dashboard.services.notification_service import get_unread_count
from api.routes.auth import require_permission

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="KoraBuild Admin API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    await init_db()


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    message = str(exc)
    # Notification triggers on the hosted database reference columns without a table prefix
    error = "Database trigger configuration issue" if "ambiguous" in message.lower() else "Database error"
    return JSONResponse(status_code=500, content={"error": error, "details": message})


# ─── DASHBOARD ───────────────────────────────────────────

async def _count(db: AsyncSession, column, *where) -> int:
    return (await db.execute(select(func.count(column)).where(*where))).scalar() or 0


@app.get("/api/dashboard")
async def get_dashboard(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("dashboard.view")),
):
    rows = (await db.execute(
        select(Project.status, func.count(Project.id)).group_by(Project.status)
    )).all()
    projects_by_status = {status: count for status, count in rows}

    return {
        "users": {
            "total": await _count(db, User.id),
            "clients": await _count(db, User.id, User.role == UserRole.CLIENT.value),
            "admins": await _count(db, User.id, User.role == UserRole.ADMIN.value),
        },
        "projects": {
            "total": sum(projects_by_status.values()),
            "active": projects_by_status.get(ProjectStatus.IN_PROGRESS.value, 0),
            "by_status": projects_by_status,
        },
        "pending_payments": await _count(db, Payment.id, Payment.status == PaymentStatus.PENDING.value),
        "deliveries": {
            "scheduled": await _count(
                db, Delivery.id, Delivery.delivery_status == DeliveryStatus.SCHEDULED.value
            ),
            "in_transit": await _count(
                db, Delivery.id, Delivery.delivery_status == DeliveryStatus.IN_TRANSIT.value
            ),
        },
        "pending_contractor_approvals": await _count(
            db, ProjectContractor.id,
            ProjectContractor.contract_status == ContractStatus.PENDING_APPROVAL.value,
        ),
        "pending_requests": await _count(
            db, ServiceRequest.id, ServiceRequest.status == RequestStatus.SUBMITTED.value
        ),
        "unread_notifications": await get_unread_count(db, settings, user),
    }


# ─── ROUTERS ─────────────────────────────────────────────
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from api.routes.projects import router as projects_router
from api.routes.finances import router as finances_router
from api.routes.contractors import router as contractors_router
from api.routes.deliveries import router as deliveries_router
from api.routes.orders import router as orders_router
from api.routes.notifications import router as notifications_router
from api.routes.admin_notifications import router as admin_notifications_router
from api.routes.admin_requests import router as admin_requests_router
from api.routes.communications import router as communications_router

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(projects_router)
app.include_router(finances_router)
app.include_router(contractors_router)
app.include_router(deliveries_router)
app.include_router(orders_router)
app.include_router(notifications_router)
app.include_router(admin_notifications_router)
app.include_router(admin_requests_router)
app.include_router(communications_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
