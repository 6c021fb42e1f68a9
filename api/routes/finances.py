"""Finances — payments, overview, next payment (credit accounts)"""
import logging
import uuid
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from dashboard.db.session import get_session
from dashboard.db.models import (
    Payment, PaymentStatus, PaymentCategory, Project, CreditAccount, User, utcnow,
)
from dashboard.services.payment_service import (
    SORTABLE_COLUMNS, update_payments_total, payment_summary, days_overdue, finance_overview,
)
from dashboard.utils.formatters import payment_out, iso
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/finances", tags=["finances"])


class PaymentCreate(BaseModel):
    project_id: uuid.UUID
    amount: float
    payment_method: str
    reference: str
    description: str
    payment_date: date | None = None
    milestone_id: uuid.UUID | None = None
    receipt_url: str | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    payment_category: PaymentCategory = PaymentCategory.OTHER


class PaymentUpdate(BaseModel):
    amount: float | None = None
    payment_method: str | None = None
    reference: str | None = None
    description: str | None = None
    payment_date: date | None = None
    milestone_id: uuid.UUID | None = None
    receipt_url: str | None = None
    status: PaymentStatus | None = None
    payment_category: PaymentCategory | None = None


class NextPaymentData(BaseModel):
    project_id: uuid.UUID | None = None
    milestone_id: uuid.UUID | None = None
    payment_amount: float | None = None
    payment_sequence: int | None = None
    total_payments: int | None = None
    total_amount: float | None = None
    next_payment_date: date | None = None
    last_payment_date: date | None = None
    credit_terms: str | None = None
    credit_status: str | None = None
    notes: str | None = None


def _with_relations():
    return (
        selectinload(Payment.project).selectinload(Project.client),
        selectinload(Payment.milestone),
    )


async def _get_payment_or_404(db: AsyncSession, payment_id: uuid.UUID) -> Payment:
    payment = (await db.execute(
        select(Payment).options(*_with_relations()).where(Payment.id == str(payment_id))
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if not payment:
        raise HTTPException(404, "Payment not found")
    return payment


def _apply(obj, changes: dict):
    for field, value in changes.items():
        if hasattr(value, "value"):
            value = value.value
        elif isinstance(value, uuid.UUID):
            value = str(value)
        setattr(obj, field, value)


# ─── OVERVIEW / PAYMENTS ────────────────────────────────

@router.get("")
async def get_overview(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.view")),
):
    return {"overview": await finance_overview(db)}


@router.get("/payments")
async def list_payments(
    project_id: uuid.UUID | None = None,
    status: str | None = None,
    category: str | None = None,
    milestone_id: uuid.UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    sort_by: str = "payment_date",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.view")),
):
    filters = []
    if project_id:
        filters.append(Payment.project_id == str(project_id))
    if status:
        filters.append(Payment.status == status)
    if category:
        filters.append(Payment.payment_category == category)
    if milestone_id:
        filters.append(Payment.milestone_id == str(milestone_id))
    if start_date:
        filters.append(Payment.payment_date >= start_date)
    if end_date:
        filters.append(Payment.payment_date <= end_date)

    column = SORTABLE_COLUMNS.get(sort_by, Payment.payment_date)
    ordering = column.asc() if sort_order.lower() == "asc" else column.desc()

    total = (await db.execute(select(func.count(Payment.id)).where(*filters))).scalar() or 0
    payments = (await db.execute(
        select(Payment).options(*_with_relations()).where(*filters)
        .order_by(ordering, Payment.created_at.desc())
        .offset((page - 1) * limit).limit(limit)
    )).scalars().all()

    summary = None
    if project_id:
        project_payments = (await db.execute(
            select(Payment).where(Payment.project_id == str(project_id))
        )).scalars().all()
        summary = payment_summary(project_payments)

    return {
        "payments": [payment_out(p, p.project, p.milestone) for p in payments],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
        "summary": summary,
    }


@router.post("/payments", status_code=201)
async def create_payment(
    data: PaymentCreate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.manage")),
):
    if data.amount <= 0:
        raise HTTPException(400, "Amount must be greater than 0")
    for name in ("payment_method", "reference", "description"):
        if not getattr(data, name).strip():
            raise HTTPException(400, f"{name} is required")

    project = (await db.execute(
        select(Project).where(Project.id == str(data.project_id))
    )).scalar_one_or_none()
    if not project:
        raise HTTPException(404, "Project not found")

    payment = Payment(
        project_id=project.id,
        milestone_id=str(data.milestone_id) if data.milestone_id else None,
        amount=data.amount,
        payment_date=data.payment_date or date.today(),
        payment_method=data.payment_method,
        reference=data.reference,
        description=data.description,
        receipt_url=data.receipt_url,
        status=data.status.value,
        payment_category=data.payment_category.value,
    )
    db.add(payment)
    await db.flush()
    await update_payments_total(db, project.id)
    await db.commit()

    payment = await _get_payment_or_404(db, payment.id)
    logger.info(f"Payment created: {payment.amount} for project {project.id}")
    return {"success": True, "payment": payment_out(payment, payment.project, payment.milestone)}


@router.put("/payments/{payment_id}")
async def update_payment(
    payment_id: uuid.UUID,
    data: PaymentUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.manage")),
):
    payment = await _get_payment_or_404(db, payment_id)
    changes = data.model_dump(exclude_unset=True)
    if "amount" in changes and (changes["amount"] or 0) <= 0:
        raise HTTPException(400, "Amount must be greater than 0")

    _apply(payment, changes)
    payment.updated_at = utcnow()
    await db.flush()
    await update_payments_total(db, payment.project_id)
    await db.commit()

    payment = await _get_payment_or_404(db, payment_id)
    return {"success": True, "payment": payment_out(payment, payment.project, payment.milestone)}


@router.delete("/payments/{payment_id}")
async def delete_payment(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.manage")),
):
    payment = await _get_payment_or_404(db, payment_id)
    project_id = payment.project_id
    await db.delete(payment)
    await db.flush()
    await update_payments_total(db, project_id)
    await db.commit()
    return {"success": True, "deleted_id": str(payment_id)}


# ─── NEXT PAYMENT ───────────────────────────────────────

def _credit_account_out(acc: CreditAccount) -> dict:
    data = {
        "id": acc.id,
        "project_id": acc.project_id,
        "milestone_id": acc.milestone_id,
        "payment_amount": acc.payment_amount,
        "payment_sequence": acc.payment_sequence,
        "total_payments": acc.total_payments,
        "total_amount": acc.total_amount,
        "next_payment_date": iso(acc.next_payment_date),
        "last_payment_date": iso(acc.last_payment_date),
        "credit_terms": acc.credit_terms,
        "credit_status": acc.credit_status,
        "notes": acc.notes,
        "created_at": iso(acc.created_at),
        "updated_at": iso(acc.updated_at),
    }
    m = acc.milestone
    if m is not None:
        data.update({
            "milestone_name": m.milestone_name,
            "milestone_description": m.description,
            "milestone_phase_category": m.phase_category,
            "milestone_status": m.status,
            "milestone_progress": m.progress_percentage or 0,
        })
    overdue = days_overdue(acc.next_payment_date)
    data["is_overdue"] = overdue > 0
    data["days_overdue"] = overdue
    return data


async def _get_account_or_404(db: AsyncSession, account_id: uuid.UUID) -> CreditAccount:
    acc = (await db.execute(
        select(CreditAccount).options(selectinload(CreditAccount.milestone))
        .where(CreditAccount.id == str(account_id))
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if not acc:
        raise HTTPException(404, "Next payment not found")
    return acc


@router.get("/next-payment")
async def get_next_payment(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.view")),
):
    acc = (await db.execute(
        select(CreditAccount).options(selectinload(CreditAccount.milestone))
        .where(CreditAccount.project_id == str(project_id))
    )).scalar_one_or_none()
    return {"next_payment": _credit_account_out(acc) if acc else None}


@router.post("/next-payment", status_code=201)
async def create_next_payment(
    data: NextPaymentData,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.manage")),
):
    if not data.project_id:
        raise HTTPException(400, "project_id is required")
    project_id = str(data.project_id)

    project = (await db.execute(select(Project.id).where(Project.id == project_id))).first()
    if not project:
        raise HTTPException(404, "Project not found")
    existing = (await db.execute(
        select(CreditAccount.id).where(CreditAccount.project_id == project_id)
    )).first()
    if existing:
        raise HTTPException(409, "Credit account already exists for this project. Use update instead.")

    acc = CreditAccount(
        project_id=project_id,
        milestone_id=str(data.milestone_id) if data.milestone_id else None,
        payment_amount=data.payment_amount or 0,
        payment_sequence=data.payment_sequence or 1,
        total_payments=data.total_payments or 1,
        total_amount=data.total_amount or data.payment_amount or 0,
        next_payment_date=data.next_payment_date,
        last_payment_date=data.last_payment_date,
        credit_terms=data.credit_terms or "30 days net",
        credit_status=data.credit_status or "active",
        notes=data.notes,
    )
    db.add(acc)
    await db.commit()
    acc = await _get_account_or_404(db, acc.id)
    return {"success": True, "next_payment": _credit_account_out(acc)}


@router.put("/next-payment/{account_id}")
async def update_next_payment(
    account_id: uuid.UUID,
    data: NextPaymentData,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.manage")),
):
    acc = await _get_account_or_404(db, account_id)
    _apply(acc, data.model_dump(exclude_unset=True, exclude={"project_id"}))
    acc.updated_at = utcnow()
    await db.commit()
    acc = await _get_account_or_404(db, account_id)
    return {"success": True, "next_payment": _credit_account_out(acc)}


@router.delete("/next-payment/{account_id}")
async def delete_next_payment(
    account_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("finances.manage")),
):
    acc = await _get_account_or_404(db, account_id)
    await db.delete(acc)
    await db.commit()
    return {"success": True}
