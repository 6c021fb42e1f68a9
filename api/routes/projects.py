"""Projects — portfolio, health scores, milestones"""
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
    Project, ProjectStatus, MilestoneStatus, User, utcnow,
)
from dashboard.services.project_service import (
    project_stats, portfolio_summary, apply_progress, recalculate_all_progress, delete_project_tree,
)
from dashboard.utils.formatters import project_out, milestone_out, user_brief
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectCreate(BaseModel):
    project_name: str
    project_address: str
    contract_value: float
    start_date: date
    expected_completion: date
    client_id: uuid.UUID
    description: str | None = None
    current_phase: str = "Planning"
    status: ProjectStatus = ProjectStatus.PLANNING


class ProjectUpdate(BaseModel):
    project_name: str | None = None
    project_address: str | None = None
    contract_value: float | None = None
    start_date: date | None = None
    expected_completion: date | None = None
    actual_completion: date | None = None
    current_phase: str | None = None
    progress_percentage: int | None = None
    status: ProjectStatus | None = None
    description: str | None = None


class MilestoneUpdate(BaseModel):
    status: MilestoneStatus | None = None
    progress_percentage: int | None = None
    actual_start: date | None = None
    actual_end: date | None = None
    planned_start: date | None = None
    planned_end: date | None = None
    actual_cost: float | None = None


def _with_details():
    return (
        selectinload(Project.client),
        selectinload(Project.milestones),
        selectinload(Project.contractors),
        selectinload(Project.payments),
    )


def _project_detail(p: Project) -> dict:
    return {
        **project_out(p),
        "client": user_brief(p.client),
        "milestones": [milestone_out(m) for m in p.milestones],
        "stats": project_stats(p),
    }


async def _get_project_or_404(db: AsyncSession, project_id: uuid.UUID) -> Project:
    project = (await db.execute(
        select(Project).options(*_with_details()).where(Project.id == str(project_id))
    )).scalar_one_or_none()
    if not project:
        raise HTTPException(404, "Project not found")
    return project


@router.get("")
async def list_projects(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("projects.view")),
):
    result = await db.execute(
        select(Project).options(*_with_details()).order_by(Project.created_at.desc())
    )
    projects = [_project_detail(p) for p in result.scalars().all()]
    return {"projects": projects, "summary": portfolio_summary(projects)}


@router.post("", status_code=201)
async def create_project(
    data: ProjectCreate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("projects.edit")),
):
    if not data.project_name.strip() or not data.project_address.strip():
        raise HTTPException(400, "Project name and address are required")
    if data.contract_value <= 0:
        raise HTTPException(400, "Contract value must be greater than 0")

    client = (await db.execute(select(User).where(User.id == str(data.client_id)))).scalar_one_or_none()
    if not client:
        raise HTTPException(400, "Client not found")

    project = Project(
        client_id=client.id,
        project_name=data.project_name.strip(),
        project_address=data.project_address.strip(),
        contract_value=data.contract_value,
        start_date=data.start_date,
        expected_completion=data.expected_completion,
        description=data.description,
        current_phase=data.current_phase or "Planning",
        status=data.status.value,
        progress_percentage=0,
        project_photo_urls=[],
    )
    db.add(project)
    await db.commit()
    logger.info(f"Project created: {project.project_name} for {client.email}")
    return {"success": True, "project": project_out(project)}


@router.post("/recalculate-progress")
async def recalculate_progress(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("projects.edit")),
):
    summary = await recalculate_all_progress(db)
    await db.commit()
    return {"success": True, **summary}


@router.get("/{project_id}")
async def get_project(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("projects.view")),
):
    return {"project": _project_detail(await _get_project_or_404(db, project_id))}


@router.put("/{project_id}")
async def update_project(
    project_id: uuid.UUID,
    data: ProjectUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("projects.edit")),
):
    project = await _get_project_or_404(db, project_id)
    changes = data.model_dump(exclude_unset=True)
    if "contract_value" in changes and (changes["contract_value"] or 0) <= 0:
        raise HTTPException(400, "Contract value must be greater than 0")

    for field, value in changes.items():
        if value is None and field in ("project_name", "project_address", "start_date", "expected_completion"):
            continue
        if field == "status" and value is not None:
            value = value.value
        setattr(project, field, value)
    project.updated_at = utcnow()
    await db.commit()
    return {"success": True, "project": _project_detail(project)}


@router.delete("/{project_id}")
async def delete_project(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("projects.delete")),
):
    project = await _get_project_or_404(db, project_id)
    name = project.project_name
    counts = await delete_project_tree(db, str(project_id))
    await db.commit()
    return {"success": True, "project_name": name, "deleted": counts}


@router.get("/{project_id}/milestones")
async def list_milestones(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("projects.view")),
):
    project = await _get_project_or_404(db, project_id)
    return {
        "project_id": project.id,
        "milestones": [milestone_out(m) for m in project.milestones],
    }


@router.patch("/{project_id}/milestones/{milestone_id}")
async def update_milestone(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    data: MilestoneUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("projects.edit")),
):
    project = await _get_project_or_404(db, project_id)
    milestone = next((m for m in project.milestones if m.id == str(milestone_id)), None)
    if not milestone:
        raise HTTPException(404, "Milestone not found")

    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "status" and value is not None:
            value = value.value
        setattr(milestone, field, value)
    if milestone.status == MilestoneStatus.COMPLETED.value:
        milestone.progress_percentage = 100
        milestone.actual_end = milestone.actual_end or date.today()
    milestone.updated_at = utcnow()

    change = apply_progress(project)
    await db.commit()
    return {
        "success": True,
        "milestone": milestone_out(milestone),
        "project_progress": project.progress_percentage,
        "progress_change": change,
    }
