"""
Project statistics — health scores and milestone-driven progress.
"""
import logging
from datetime import date
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from dashboard.db.models import (
    Project, ProjectStatus, MilestoneStatus, ContractStatus, OnSiteStatus, utcnow,
    ProjectMilestone, ProjectContractor, ProjectFinancials, CreditAccount, Payment,
    ProjectOrder, OrderItem, Delivery, DeliveryItem, Conversation, Message, Notification,
    ServiceRequest,
)

logger = logging.getLogger(__name__)


def timeline_score(start: date | None, expected: date | None, actual: date | None = None,
                   today: date | None = None) -> float:
    if not start or not expected:
        return 100
    today = today or date.today()
    planned = (expected - start).days

    if actual:
        actual_duration = (actual - start).days
        if actual_duration <= 0:
            return 100
        return min(100, max(0, planned / actual_duration * 100))

    overdue = (today - expected).days
    if overdue <= 0:
        return 100
    if planned <= 0:
        return 0
    return max(0, 100 - overdue / planned * 100)


def budget_score(budget: float, spent: float) -> float:
    if not budget:
        return 100
    ratio = spent / budget
    if ratio <= 1:
        return 100
    return max(0, 100 - (ratio - 1) * 200)


def milestone_progress(milestones) -> tuple[int, int, int]:
    """(progress %, total, completed) from a project's milestones."""
    total = len(milestones)
    completed = sum(1 for m in milestones if m.status == MilestoneStatus.COMPLETED.value)
    progress = round(sum(m.progress_percentage or 0 for m in milestones) / total) if total else 0
    return progress, total, completed


def project_stats(project: Project, today: date | None = None) -> dict:
    milestones = project.milestones or []
    assignments = project.contractors or []
    payments = project.payments or []

    total_milestones = len(milestones)
    completed_milestones = sum(1 for m in milestones if m.status == MilestoneStatus.COMPLETED.value)
    total_payments = sum(p.amount or 0 for p in payments)
    total_contract_value = sum(a.contract_value or 0 for a in assignments) or project.contract_value or 0

    progress = project.progress_percentage or 0
    timeline = timeline_score(project.start_date, project.expected_completion,
                              project.actual_completion, today)
    budget = budget_score(total_contract_value, total_payments)
    milestone = completed_milestones / total_milestones * 100 if total_milestones else 0

    return {
        "totalMilestones": total_milestones,
        "completedMilestones": completed_milestones,
        "totalPayments": total_payments,
        "totalContractValue": total_contract_value,
        "healthScore": round((progress + timeline + budget + milestone) / 4),
        "progressScore": progress,
        "timelineScore": timeline,
        "budgetScore": budget,
        "milestoneScore": milestone,
        "activeContractors": sum(1 for a in assignments if a.contract_status == ContractStatus.ACTIVE.value),
        "onSiteContractors": sum(1 for a in assignments if a.on_site_status == OnSiteStatus.ON_SITE.value),
    }


def portfolio_summary(projects: list[dict]) -> dict:
    total = len(projects)

    def count(status):
        return sum(1 for p in projects if p["status"] == status)

    return {
        "totalProjects": total,
        "activeProjects": count(ProjectStatus.IN_PROGRESS.value),
        "completedProjects": count(ProjectStatus.COMPLETED.value),
        "onHoldProjects": count(ProjectStatus.ON_HOLD.value),
        "totalContractValue": sum(p["contract_value"] or 0 for p in projects),
        "averageProgress": round(sum(p["progress_percentage"] for p in projects) / total) if total else 0,
        "averageHealthScore": round(sum(p["stats"]["healthScore"] for p in projects) / total) if total else 0,
        "projectsNeedingAttention": sum(1 for p in projects if p["stats"]["healthScore"] < 70),
        "projectsOnSchedule": sum(1 for p in projects if p["stats"]["timelineScore"] >= 80),
        "projectsOverBudget": sum(1 for p in projects if p["stats"]["budgetScore"] < 60),
    }


def apply_progress(project: Project) -> dict | None:
    """Sync a project's progress fields with its milestones. Returns the change, if any."""
    progress, total, completed = milestone_progress(project.milestones or [])
    old = project.progress_percentage or 0
    if (
        old == progress
        and (project.total_milestones or 0) == total
        and (project.completed_milestones or 0) == completed
    ):
        return None

    project.progress_percentage = progress
    project.total_milestones = total
    project.completed_milestones = completed
    project.updated_at = utcnow()
    return {
        "projectId": project.id,
        "projectName": project.project_name,
        "oldProgress": old,
        "newProgress": progress,
        "milestoneCount": total,
        "completedCount": completed,
        "progressChange": progress - old,
    }


async def recalculate_all_progress(session: AsyncSession) -> dict:
    result = await session.execute(select(Project).options(selectinload(Project.milestones)))
    projects = result.scalars().all()

    changes = []
    for project in projects:
        change = apply_progress(project)
        if change:
            changes.append(change)

    await session.flush()
    logger.info(f"Progress recalculated: {len(changes)} of {len(projects)} projects updated")
    return {
        "processed": len(projects),
        "updated": len(changes),
        "unchanged": len(projects) - len(changes),
        "results": changes,
    }


async def delete_project_tree(session: AsyncSession, project_id: str) -> dict:
    """Delete a project and its dependants, leaves first. Returns rows deleted per table."""
    order_ids = select(ProjectOrder.id).where(ProjectOrder.project_id == project_id)
    delivery_ids = select(Delivery.id).where(Delivery.order_id.in_(order_ids))
    conversation_ids = select(Conversation.id).where(Conversation.project_id == project_id)

    steps = [
        ("delivery_items", delete(DeliveryItem).where(DeliveryItem.delivery_id.in_(delivery_ids))),
        ("deliveries", delete(Delivery).where(Delivery.order_id.in_(order_ids))),
        ("order_items", delete(OrderItem).where(OrderItem.order_id.in_(order_ids))),
        ("project_orders", delete(ProjectOrder).where(ProjectOrder.project_id == project_id)),
        ("messages", delete(Message).where(Message.conversation_id.in_(conversation_ids))),
        ("conversations", delete(Conversation).where(Conversation.project_id == project_id)),
        ("notifications", delete(Notification).where(Notification.project_id == project_id)),
        ("payments", delete(Payment).where(Payment.project_id == project_id)),
        ("enhanced_credit_accounts", delete(CreditAccount).where(CreditAccount.project_id == project_id)),
        ("project_financials", delete(ProjectFinancials).where(ProjectFinancials.project_id == project_id)),
        ("project_contractors", delete(ProjectContractor).where(ProjectContractor.project_id == project_id)),
        ("project_milestones", delete(ProjectMilestone).where(ProjectMilestone.project_id == project_id)),
        ("requests", delete(ServiceRequest).where(ServiceRequest.project_id == project_id)),
        ("projects", delete(Project).where(Project.id == project_id)),
    ]

    counts = {}
    for table, stmt in steps:
        result = await session.execute(stmt.execution_options(synchronize_session=False))
        counts[table] = result.rowcount or 0
    logger.info(f"Project {project_id} deleted: {counts}")
    return counts
