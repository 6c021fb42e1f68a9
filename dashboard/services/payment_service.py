import logging
from datetime import date
from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.db.models import (
    Payment, PaymentStatus, Project, ProjectFinancials, utcnow,
)

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    "payment_date": Payment.payment_date,
    "amount": Payment.amount,
    "status": Payment.status,
    "payment_category": Payment.payment_category,
    "created_at": Payment.created_at,
    "updated_at": Payment.updated_at,
}


async def update_payments_total(session: AsyncSession, project_id: str) -> float | None:
    """Refresh project_financials.total_payments_calculated from completed payments.

    cash_received is entered by hand and is left alone. Failures are logged
    and swallowed so the payment write itself still goes through.
    """
    try:
        async with session.begin_nested():
            total = (await session.execute(
                select(func.coalesce(func.sum(Payment.amount), 0)).where(
                    Payment.project_id == project_id,
                    Payment.status == PaymentStatus.COMPLETED.value,
                )
            )).scalar() or 0
            await session.execute(
                update(ProjectFinancials)
                .where(ProjectFinancials.project_id == project_id)
                .values(total_payments_calculated=total, updated_at=utcnow())
            )
    except SQLAlchemyError as e:
        logger.warning(f"Failed to update payments total for project {project_id}: {e}")
        return None

    logger.info(f"Payments total for project {project_id}: {total}")
    return total


def payment_summary(payments: list[Payment]) -> dict:
    status_counts: dict[str, int] = {}
    category_counts: dict[str, int] = {}
    for p in payments:
        status_counts[p.status] = status_counts.get(p.status, 0) + 1
        category_counts[p.payment_category] = category_counts.get(p.payment_category, 0) + 1

    return {
        "total_amount": sum(p.amount or 0 for p in payments),
        "completed_amount": sum(
            p.amount or 0 for p in payments if p.status == PaymentStatus.COMPLETED.value
        ),
        "payment_count": len(payments),
        "status_counts": status_counts,
        "category_counts": category_counts,
    }


def days_overdue(next_payment_date: date | None, today: date | None = None) -> int:
    if not next_payment_date:
        return 0
    today = today or date.today()
    return max(0, (today - next_payment_date).days)


def latest_financials(rows: list[ProjectFinancials]) -> dict[str, ProjectFinancials]:
    """Most recently updated financials snapshot per project."""
    latest: dict[str, ProjectFinancials] = {}
    for row in rows:
        current = latest.get(row.project_id)
        if current is None or (row.updated_at and (not current.updated_at or row.updated_at > current.updated_at)):
            latest[row.project_id] = row
    return latest


async def finance_overview(session: AsyncSession) -> dict:
    projects = (await session.execute(select(Project))).scalars().all()
    payments = (await session.execute(select(Payment))).scalars().all()
    financials = (await session.execute(select(ProjectFinancials))).scalars().all()

    total_expected = sum(p.contract_value or 0 for p in projects)
    total_received = sum(f.cash_received or 0 for f in latest_financials(financials).values())
    total_expenditure = sum(
        p.amount or 0 for p in payments if p.status == PaymentStatus.COMPLETED.value
    )
    total_available = total_received - total_expenditure

    status_breakdown: dict[str, int] = {}
    category_breakdown: dict[str, float] = {}
    for p in payments:
        status_breakdown[p.status] = status_breakdown.get(p.status, 0) + 1
        category_breakdown[p.payment_category] = category_breakdown.get(p.payment_category, 0) + (p.amount or 0)

    this_month = date.today().strftime("%Y-%m")
    monthly = sum(
        p.amount or 0 for p in payments
        if p.payment_date and p.payment_date.strftime("%Y-%m") == this_month
    )

    return {
        "totalExpected": total_expected,
        "totalReceived": total_received,
        "totalOutstanding": total_expected - total_received,
        "totalExpenditure": total_expenditure,
        "totalAvailable": total_available,
        "monthlyPayments": monthly,
        "cashFlowHealth": "positive" if total_available > 0 else "negative",
        "collectionProgress": round(total_received / total_expected * 100, 1) if total_expected > 0 else 0,
        "expenditureRate": round(total_expenditure / total_received * 100, 1) if total_received > 0 else 0,
        "paymentStats": {
            "total": sum(p.amount or 0 for p in payments),
            "count": len(payments),
            "statusBreakdown": status_breakdown,
            "categoryBreakdown": category_breakdown,
        },
        "projectCount": len(projects),
    }
