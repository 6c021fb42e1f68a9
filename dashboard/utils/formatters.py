"""
Formatters — shaping rows into the JSON the dashboard pages expect.
"""
from datetime import date, datetime, timezone

IMAGE_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
}


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def truncate(text: str, limit: int = 100) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


# ─── Attachments ─────────────────────────────────────────

def file_type_for(filename: str) -> str:
    """MIME type from a file extension, defaulting to a binary stream."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext in IMAGE_TYPES:
        return IMAGE_TYPES[ext]
    if ext == "pdf":
        return "application/pdf"
    if ext in ("doc", "docx"):
        return "application/msword"
    if ext == "txt":
        return "text/plain"
    return "application/octet-stream"


def format_attachments(message_id: str, urls: list[str] | None) -> list[dict]:
    attachments = []
    for index, url in enumerate(urls or []):
        filename = url.rstrip("/").split("/")[-1] or f"attachment_{index + 1}"
        attachments.append({
            "id": f"{message_id}_attachment_{index}",
            "filename": filename,
            "file_type": file_type_for(filename),
            "file_size": 0,
            "file_url": url,
        })
    return attachments


# ─── Rows ────────────────────────────────────────────────

def user_brief(user) -> dict | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
    }


def user_out(user) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "role": user.role,
        "profile_photo_url": user.profile_photo_url,
        "created_at": iso(user.created_at),
        "updated_at": iso(user.updated_at),
    }


def milestone_out(m) -> dict:
    return {
        "id": m.id,
        "project_id": m.project_id,
        "milestone_name": m.milestone_name,
        "description": m.description,
        "phase_category": m.phase_category,
        "planned_start": iso(m.planned_start),
        "planned_end": iso(m.planned_end),
        "actual_start": iso(m.actual_start),
        "actual_end": iso(m.actual_end),
        "status": m.status,
        "progress_percentage": m.progress_percentage or 0,
        "order_index": m.order_index,
        "estimated_cost": m.estimated_cost,
        "actual_cost": m.actual_cost,
        "responsible_contractor": m.responsible_contractor,
    }


def project_out(p) -> dict:
    return {
        "id": p.id,
        "client_id": p.client_id,
        "project_name": p.project_name,
        "project_address": p.project_address,
        "contract_value": p.contract_value,
        "start_date": iso(p.start_date),
        "expected_completion": iso(p.expected_completion),
        "actual_completion": iso(p.actual_completion),
        "current_phase": p.current_phase,
        "progress_percentage": p.progress_percentage or 0,
        "status": p.status,
        "description": p.description,
        "project_photo_urls": p.project_photo_urls or [],
        "total_milestones": p.total_milestones or 0,
        "completed_milestones": p.completed_milestones or 0,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def payment_out(p, project=None, milestone=None) -> dict:
    data = {
        "id": p.id,
        "project_id": p.project_id,
        "milestone_id": p.milestone_id,
        "amount": p.amount,
        "payment_date": iso(p.payment_date),
        "payment_method": p.payment_method,
        "reference": p.reference,
        "description": p.description,
        "receipt_url": p.receipt_url,
        "status": p.status,
        "payment_category": p.payment_category,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }
    if project is not None:
        data["project"] = {
            "id": project.id,
            "project_name": project.project_name,
            "client_id": project.client_id,
            "client": user_brief(project.client),
        }
    if milestone is not None:
        data["milestone"] = {
            "id": milestone.id,
            "milestone_name": milestone.milestone_name,
            "phase_category": milestone.phase_category,
        }
    return data


def contractor_out(c) -> dict:
    return {
        "id": c.id,
        "contractor_name": c.contractor_name,
        "company_name": c.company_name,
        "primary_contact_name": c.primary_contact_name,
        "email": c.email,
        "phone": c.phone,
        "trade_specialization": c.trade_specialization,
        "secondary_specializations": c.secondary_specializations or [],
        "hourly_rate": c.hourly_rate,
        "daily_rate": c.daily_rate,
        "overall_rating": c.overall_rating or 0,
        "contractor_source": c.contractor_source,
        "verification_status": c.verification_status,
        "status": c.status,
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }


def assignment_out(a) -> dict:
    return {
        "id": a.id,
        "project_id": a.project_id,
        "contractor_id": a.contractor_id,
        "contract_type": a.contract_type,
        "contract_value": a.contract_value or 0,
        "scope_of_work": a.scope_of_work,
        "start_date": iso(a.start_date),
        "planned_end_date": iso(a.planned_end_date),
        "payment_terms": a.payment_terms,
        "contract_status": a.contract_status,
        "on_site_status": a.on_site_status,
        "work_completion_percentage": a.work_completion_percentage or 0,
        "created_at": iso(a.created_at),
    }


def notification_out(n) -> dict:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "project_id": n.project_id,
        "notification_type": n.notification_type,
        "title": n.title,
        "message": n.message,
        "entity_type": n.entity_type,
        "entity_id": n.entity_id,
        "priority_level": n.priority_level,
        "action_url": n.action_url,
        "metadata": n.meta or {},
        "is_read": bool(n.is_read),
        "read_at": iso(n.read_at),
        "created_at": iso(n.created_at),
    }
