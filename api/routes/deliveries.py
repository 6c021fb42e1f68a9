"""Deliveries — scheduling, status tracking, confirmation"""
import logging
import uuid
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from dashboard.db.session import get_session
from dashboard.db.models import Delivery, DeliveryStatus, ProjectOrder, User, utcnow
from dashboard.services.delivery_service import (
    create_delivery, delivery_stats, vehicle_info, set_status, confirm,
)
from dashboard.utils.formatters import iso
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])


class DeliveryItemIn(BaseModel):
    order_item_id: uuid.UUID | None = None
    quantity_to_deliver: float = 0
    notes: str | None = None


class DeliveryCreate(BaseModel):
    project_id: uuid.UUID
    order_id: uuid.UUID
    delivery_date: date | None = None
    delivery_time: str | None = None
    delivery_status: DeliveryStatus = DeliveryStatus.SCHEDULED
    driver_name: str | None = None
    driver_phone: str | None = None
    vehicle_type: str | None = None
    vehicle_registration: str | None = None
    delivery_method: str | None = None
    recipient_name: str | None = None
    delivery_instructions: str | None = None
    special_requirements: str | None = None
    notes: str | None = None
    delivery_photos: list[str] = []
    delivery_items: list[DeliveryItemIn] = []


class DeliveryUpdate(BaseModel):
    delivery_date: date | None = None
    scheduled_time: str | None = None
    driver_name: str | None = None
    driver_phone: str | None = None
    vehicle_info: str | None = None
    delivery_method: str | None = None
    received_by_name: str | None = None
    special_handling_notes: str | None = None
    notes: str | None = None


class StatusUpdate(BaseModel):
    status: DeliveryStatus
    notes: str | None = None


class DeliveryConfirmation(BaseModel):
    recipient_name: str
    delivery_photos: list[str] = []
    notes: str | None = None


def _order_out(order: ProjectOrder | None) -> dict | None:
    if order is None:
        return None
    supplier = order.supplier
    return {
        "id": order.id,
        "order_number": order.order_number,
        "project_id": order.project_id,
        "total_amount": order.total_amount,
        "delivery_address": order.delivery_address,
        "delivery_instructions": order.delivery_instructions,
        "supplier": {
            "supplier_name": supplier.supplier_name,
            "contact_person": supplier.contact_person,
            "email": supplier.email,
            "phone": supplier.phone,
        } if supplier else None,
    }


def _delivery_out(d: Delivery, with_items: bool = False) -> dict:
    data = {
        "id": d.id,
        "order_id": d.order_id,
        "delivery_number": d.delivery_number,
        "delivery_date": iso(d.delivery_date),
        "scheduled_time": d.scheduled_time,
        "delivery_status": d.delivery_status,
        "driver_name": d.driver_name,
        "driver_phone": d.driver_phone,
        "vehicle_info": d.vehicle_info,
        "delivery_method": d.delivery_method,
        "received_by_name": d.received_by_name,
        "special_handling_notes": d.special_handling_notes,
        "notes": d.notes,
        "delivery_photos": d.delivery_photos or [],
        "actual_arrival_time": iso(d.actual_arrival_time),
        "created_at": iso(d.created_at),
        "updated_at": iso(d.updated_at),
        "project_order": _order_out(d.order),
    }
    if with_items:
        data["items"] = [
            {
                "id": i.id,
                "order_item_id": i.order_item_id,
                "quantity_delivered": i.quantity_delivered,
                "quantity_accepted": i.quantity_accepted,
                "quantity_rejected": i.quantity_rejected,
                "condition_on_arrival": i.condition_on_arrival,
                "quality_check_passed": bool(i.quality_check_passed),
                "quality_notes": i.quality_notes,
            }
            for i in d.items
        ]
    return data


async def _get_delivery_or_404(db: AsyncSession, delivery_id) -> Delivery:
    delivery = (await db.execute(
        select(Delivery)
        .options(
            selectinload(Delivery.order).selectinload(ProjectOrder.supplier),
            selectinload(Delivery.items),
        )
        .where(Delivery.id == str(delivery_id))
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if not delivery:
        raise HTTPException(404, "Delivery not found")
    return delivery


@router.get("")
async def list_deliveries(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("deliveries.view")),
):
    deliveries = (await db.execute(
        select(Delivery)
        .join(ProjectOrder, Delivery.order_id == ProjectOrder.id)
        .options(selectinload(Delivery.order).selectinload(ProjectOrder.supplier))
        .where(ProjectOrder.project_id == str(project_id))
        .order_by(Delivery.delivery_date.desc())
    )).scalars().all()
    return {
        "deliveries": [_delivery_out(d) for d in deliveries],
        "deliveryStats": delivery_stats(deliveries),
    }


@router.get("/{delivery_id}")
async def get_delivery(
    delivery_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("deliveries.view")),
):
    return {"delivery": _delivery_out(await _get_delivery_or_404(db, delivery_id), with_items=True)}


@router.post("", status_code=201)
async def schedule_delivery(
    data: DeliveryCreate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("deliveries.manage")),
):
    order = (await db.execute(
        select(ProjectOrder).where(ProjectOrder.id == str(data.order_id))
    )).scalar_one_or_none()
    if not order or order.project_id != str(data.project_id):
        raise HTTPException(404, "Order not found for this project")

    delivery = await create_delivery(
        db,
        order.id,
        items=[item.model_dump(mode="json") for item in data.delivery_items],
        delivery_date=data.delivery_date,
        scheduled_time=data.delivery_time,
        delivery_status=data.delivery_status.value,
        driver_name=data.driver_name,
        driver_phone=data.driver_phone,
        vehicle_info=vehicle_info(data.vehicle_type, data.vehicle_registration),
        delivery_method=data.delivery_method,
        received_by_name=data.recipient_name,
        special_handling_notes=data.delivery_instructions or data.special_requirements,
        notes=data.notes,
        delivery_photos=data.delivery_photos,
    )
    await db.commit()

    delivery = await _get_delivery_or_404(db, delivery.id)
    return {
        "success": True,
        "delivery": _delivery_out(delivery, with_items=True),
        "message": f"Delivery {delivery.delivery_number} created successfully",
    }


@router.put("/{delivery_id}")
async def update_delivery(
    delivery_id: uuid.UUID,
    data: DeliveryUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("deliveries.manage")),
):
    delivery = await _get_delivery_or_404(db, delivery_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(delivery, field, value)
    delivery.updated_at = utcnow()
    await db.commit()
    return {"success": True, "delivery": _delivery_out(delivery)}


@router.patch("/{delivery_id}/status")
async def update_delivery_status(
    delivery_id: uuid.UUID,
    data: StatusUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("deliveries.manage")),
):
    delivery = await _get_delivery_or_404(db, delivery_id)
    set_status(delivery, data.status.value)
    if data.notes:
        delivery.notes = data.notes
    await db.commit()
    logger.info(f"Delivery {delivery.delivery_number} -> {delivery.delivery_status}")
    return {"success": True, "delivery": _delivery_out(delivery)}


@router.post("/{delivery_id}/confirm")
async def confirm_delivery(
    delivery_id: uuid.UUID,
    data: DeliveryConfirmation,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("deliveries.manage")),
):
    delivery = await _get_delivery_or_404(db, delivery_id)
    confirm(delivery, data.recipient_name, data.delivery_photos, data.notes)
    await db.commit()
    logger.info(f"Delivery {delivery.delivery_number} confirmed by {data.recipient_name}")
    return {"success": True, "delivery": _delivery_out(delivery)}


@router.delete("/{delivery_id}")
async def delete_delivery(
    delivery_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("deliveries.manage")),
):
    delivery = await _get_delivery_or_404(db, delivery_id)
    await db.delete(delivery)
    await db.commit()
    return {"success": True}
