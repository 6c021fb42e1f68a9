"""Contractors — directory and project assignments"""
import logging
import uuid
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from dashboard.db.session import get_session
from dashboard.db.models import (
    Contractor, ContractorSource, ContractorStatus, ContractStatus, OnSiteStatus,
    Project, ProjectContractor, User, utcnow,
)
from dashboard.utils.formatters import contractor_out, assignment_out
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contractors", tags=["contractors"])


class ContractorCreate(BaseModel):
    contractor_name: str
    company_name: str
    email: str
    phone: str
    trade_specialization: str
    primary_contact_name: str | None = None
    secondary_specializations: list[str] = []
    hourly_rate: float | None = None
    daily_rate: float | None = None
    contractor_source: ContractorSource = ContractorSource.USER_ADDED


class ContractorUpdate(BaseModel):
    contractor_name: str | None = None
    company_name: str | None = None
    primary_contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    trade_specialization: str | None = None
    secondary_specializations: list[str] | None = None
    hourly_rate: float | None = None
    daily_rate: float | None = None
    overall_rating: float | None = None
    verification_status: str | None = None
    status: ContractorStatus | None = None


class AssignmentCreate(BaseModel):
    project_id: uuid.UUID
    contractor_id: uuid.UUID
    scope_of_work: str
    start_date: date
    planned_end_date: date | None = None
    contract_value: float = 0
    contract_type: str = "service_contract"
    payment_terms: str = "30 days"


class AssignmentUpdate(BaseModel):
    scope_of_work: str | None = None
    start_date: date | None = None
    planned_end_date: date | None = None
    contract_value: float | None = None
    contract_type: str | None = None
    payment_terms: str | None = None
    contract_status: ContractStatus | None = None
    on_site_status: OnSiteStatus | None = None
    work_completion_percentage: int | None = None


def _apply(obj, changes: dict):
    for field, value in changes.items():
        if hasattr(value, "value"):
            value = value.value
        setattr(obj, field, value)
    obj.updated_at = utcnow()


def assignment_stats(assignments: list[ProjectContractor]) -> dict:
    total = len(assignments)
    return {
        "totalContractors": total,
        "activeContractors": sum(1 for a in assignments if a.contract_status == ContractStatus.ACTIVE.value),
        "onSiteContractors": sum(1 for a in assignments if a.on_site_status == OnSiteStatus.ON_SITE.value),
        "completedContractors": sum(1 for a in assignments if a.contract_status == ContractStatus.COMPLETED.value),
        "totalContractValue": sum(a.contract_value or 0 for a in assignments),
        "averageCompletion": round(
            sum(a.work_completion_percentage or 0 for a in assignments) / total
        ) if total else 0,
    }


def directory_stats(contractors: list[Contractor]) -> dict:
    total = len(contractors)
    return {
        "totalContractors": total,
        "activeContractors": sum(1 for c in contractors if c.status == ContractorStatus.ACTIVE.value),
        "verifiedContractors": sum(1 for c in contractors if c.verification_status == "verified"),
        "pendingContractors": sum(1 for c in contractors if c.verification_status == "pending"),
        "userAddedContractors": sum(
            1 for c in contractors if c.contractor_source == ContractorSource.USER_ADDED.value
        ),
        "korabuildVerifiedContractors": sum(
            1 for c in contractors if c.contractor_source == ContractorSource.KORABUILD_VERIFIED.value
        ),
        "averageRating": sum(c.overall_rating or 0 for c in contractors) / total if total else 0,
    }


@router.get("")
async def list_contractors(
    project_id: uuid.UUID | None = None,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("contractors.view")),
):
    if project_id:
        assignments = (await db.execute(
            select(ProjectContractor)
            .options(selectinload(ProjectContractor.contractor))
            .where(ProjectContractor.project_id == str(project_id))
            .order_by(ProjectContractor.created_at.desc())
        )).scalars().all()
        return {
            "projectContractors": [
                {**assignment_out(a), "contractor": contractor_out(a.contractor) if a.contractor else None}
                for a in assignments
            ],
            "stats": assignment_stats(assignments),
        }

    contractors = (await db.execute(
        select(Contractor)
        .options(selectinload(Contractor.assignments))
        .order_by(Contractor.created_at.desc())
    )).scalars().all()
    return {
        "contractors": [
            {**contractor_out(c), "assignments": [assignment_out(a) for a in c.assignments]}
            for c in contractors
        ],
        "stats": directory_stats(contractors),
    }


@router.post("", status_code=201)
async def add_contractor(
    data: ContractorCreate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("contractors.manage")),
):
    required = ("contractor_name", "company_name", "email", "phone", "trade_specialization")
    missing = [name for name in required if not getattr(data, name).strip()]
    if missing:
        raise HTTPException(400, f"Missing required fields: {', '.join(missing)}")

    contractor = Contractor(
        contractor_name=data.contractor_name,
        company_name=data.company_name,
        primary_contact_name=data.primary_contact_name or data.contractor_name,
        email=data.email,
        phone=data.phone,
        trade_specialization=data.trade_specialization,
        secondary_specializations=data.secondary_specializations,
        hourly_rate=data.hourly_rate,
        daily_rate=data.daily_rate,
        contractor_source=data.contractor_source.value,
        verification_status="pending",
        status=ContractorStatus.ACTIVE.value,
    )
    db.add(contractor)
    await db.commit()
    logger.info(f"Contractor added: {contractor.contractor_name}")
    return {"success": True, "contractor": contractor_out(contractor)}


@router.post("/assignments", status_code=201)
async def assign_contractor(
    data: AssignmentCreate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("contractors.manage")),
):
    if not data.scope_of_work.strip():
        raise HTTPException(400, "Scope of work is required")

    project = (await db.execute(select(Project.id).where(Project.id == str(data.project_id)))).first()
    if not project:
        raise HTTPException(404, "Project not found")
    contractor = (await db.execute(
        select(Contractor).where(Contractor.id == str(data.contractor_id))
    )).scalar_one_or_none()
    if not contractor:
        raise HTTPException(404, "Contractor not found")

    assignment = ProjectContractor(
        project_id=str(data.project_id),
        contractor_id=contractor.id,
        scope_of_work=data.scope_of_work,
        start_date=data.start_date,
        planned_end_date=data.planned_end_date,
        contract_value=data.contract_value,
        contract_type=data.contract_type or "service_contract",
        payment_terms=data.payment_terms or "30 days",
        contract_status=ContractStatus.PENDING_APPROVAL.value,
        on_site_status=OnSiteStatus.SCHEDULED.value,
        work_completion_percentage=0,
    )
    db.add(assignment)
    await db.commit()
    logger.info(f"Contractor {contractor.contractor_name} assigned to project {assignment.project_id}")
    return {
        "success": True,
        "assignment": {**assignment_out(assignment), "contractor": contractor_out(contractor)},
    }


@router.put("/assignments/{assignment_id}")
async def update_assignment(
    assignment_id: uuid.UUID,
    data: AssignmentUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("contractors.manage")),
):
    assignment = (await db.execute(
        select(ProjectContractor).where(ProjectContractor.id == str(assignment_id))
    )).scalar_one_or_none()
    if not assignment:
        raise HTTPException(404, "Assignment not found")

    _apply(assignment, data.model_dump(exclude_unset=True))
    await db.commit()
    return {"success": True, "assignment": assignment_out(assignment)}


@router.put("/{contractor_id}")
async def update_contractor(
    contractor_id: uuid.UUID,
    data: ContractorUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("contractors.manage")),
):
    contractor = (await db.execute(
        select(Contractor).where(Contractor.id == str(contractor_id))
    )).scalar_one_or_none()
    if not contractor:
        raise HTTPException(404, "Contractor not found")

    _apply(contractor, data.model_dump(exclude_unset=True))
    await db.commit()
    return {"success": True, "contractor": contractor_out(contractor)}
