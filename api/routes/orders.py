"""Material orders — project orders, order lines, suppliers and stock alerts"""
import logging
import uuid
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from dashboard.db.session import get_session
from dashboard.db.models import (
    ProjectOrder, OrderItem, OrderStatus, Supplier, InventoryItem, Project,
    Delivery, DeliveryItem, User, utcnow,
)
from dashboard.services.order_service import (
    create_order, replace_items, line_total, order_stats, order_delivery_stats,
    supplier_stats, stock_status, inventory_alerts,
)
from dashboard.utils.formatters import iso
from api.routes.auth import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderItemIn(BaseModel):
    item_description: str = ""
    quantity_ordered: float = 0
    quantity_delivered: float = 0
    unit_of_measure: str | None = None
    unit_cost: float = 0
    delivery_status: str | None = None
    specifications: str | None = None
    notes: str | None = None


class OrderCreate(BaseModel):
    project_id: uuid.UUID
    supplier_id: uuid.UUID | None = None
    order_date: date | None = None
    required_date: date | None = None
    expected_delivery_date: date | None = None
    priority: str = "medium"
    status: OrderStatus = OrderStatus.DRAFT
    delivery_address: str = ""
    delivery_instructions: str = ""
    notes: str = ""
    order_items: list[OrderItemIn] = []


class OrderUpdate(BaseModel):
    supplier_id: uuid.UUID | None = None
    required_date: date | None = None
    expected_delivery_date: date | None = None
    priority: str | None = None
    delivery_address: str | None = None
    delivery_instructions: str | None = None
    notes: str | None = None
    payment_status: str | None = None
    order_items: list[OrderItemIn] | None = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: str | None = None


def _supplier_out(s: Supplier | None) -> dict | None:
    if s is None:
        return None
    return {
        "id": s.id,
        "supplier_name": s.supplier_name,
        "contact_person": s.contact_person,
        "email": s.email,
        "phone": s.phone,
        "specialty": s.specialty,
        "rating": s.rating or 0,
        "status": s.status,
    }


def _item_out(i: OrderItem) -> dict:
    return {
        "id": i.id,
        "line_number": i.line_number,
        "item_description": i.item_description,
        "quantity_ordered": i.quantity_ordered or 0,
        "quantity_delivered": i.quantity_delivered or 0,
        "quantity_remaining": max(0, (i.quantity_ordered or 0) - (i.quantity_delivered or 0)),
        "unit_of_measure": i.unit_of_measure,
        "unit_cost": i.unit_cost or 0,
        "line_total": line_total(i),
        "delivery_status": i.delivery_status,
        "notes": i.notes,
    }


def _order_out(o: ProjectOrder) -> dict:
    return {
        "id": o.id,
        "project_id": o.project_id,
        "supplier_id": o.supplier_id,
        "order_number": o.order_number,
        "order_date": iso(o.order_date),
        "required_date": iso(o.required_date),
        "expected_delivery_date": iso(o.expected_delivery_date),
        "priority": o.priority,
        "status": o.status,
        "subtotal": o.subtotal or 0,
        "tax_amount": o.tax_amount or 0,
        "total_amount": o.total_amount or 0,
        "currency": o.currency,
        "payment_status": o.payment_status,
        "delivery_address": o.delivery_address,
        "delivery_instructions": o.delivery_instructions,
        "notes": o.notes,
        "created_at": iso(o.created_at),
        "updated_at": iso(o.updated_at),
        "supplier": _supplier_out(o.supplier),
        "order_items": [_item_out(i) for i in o.items],
    }


def _inventory_out(item: InventoryItem) -> dict:
    return {
        "id": item.id,
        "item_code": item.item_code,
        "item_name": item.item_name,
        "description": item.description,
        "category": item.category,
        "subcategory": item.subcategory,
        "unit_of_measure": item.unit_of_measure,
        "current_stock": item.current_stock or 0,
        "min_stock_level": item.min_stock_level or 0,
        "suggested_cost": item.standard_cost or item.last_cost or 0,
        "supplier_name": item.supplier.supplier_name if item.supplier else "Unknown",
        "display_name": f"{item.item_name} ({item.item_code})",
        "stock_status": stock_status(item),
    }


async def _get_order_or_404(db: AsyncSession, order_id) -> ProjectOrder:
    order = (await db.execute(
        select(ProjectOrder)
        .options(selectinload(ProjectOrder.supplier), selectinload(ProjectOrder.items))
        .where(ProjectOrder.id == str(order_id))
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if not order:
        raise HTTPException(404, "Order not found")
    return order


async def _check_supplier(db: AsyncSession, supplier_id: uuid.UUID | None):
    if supplier_id is None:
        return
    found = (await db.execute(select(Supplier.id).where(Supplier.id == str(supplier_id)))).first()
    if not found:
        raise HTTPException(404, "Supplier not found")


@router.get("")
async def list_orders(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("orders.view")),
):
    orders = (await db.execute(
        select(ProjectOrder)
        .options(selectinload(ProjectOrder.supplier), selectinload(ProjectOrder.items))
        .where(ProjectOrder.project_id == str(project_id))
        .order_by(ProjectOrder.order_date.desc(), ProjectOrder.created_at.desc())
    )).scalars().all()
    deliveries = (await db.execute(
        select(Delivery)
        .join(ProjectOrder, Delivery.order_id == ProjectOrder.id)
        .where(ProjectOrder.project_id == str(project_id))
    )).scalars().all()
    suppliers = (await db.execute(
        select(Supplier).where(Supplier.status == "active").order_by(Supplier.supplier_name)
    )).scalars().all()
    stock = (await db.execute(
        select(InventoryItem).options(selectinload(InventoryItem.supplier))
        .where(InventoryItem.is_active.is_(True))
        .order_by(InventoryItem.item_name)
    )).scalars().all()

    alerts = inventory_alerts(stock)
    return {
        "orders": {"data": [_order_out(o) for o in orders], "stats": order_stats(orders)},
        "deliveries": {"stats": order_delivery_stats(deliveries)},
        "suppliers": {"data": [_supplier_out(s) for s in suppliers], "stats": supplier_stats(suppliers)},
        "inventory": {"alerts": {**alerts, "items": [_inventory_out(i) for i in alerts["items"]]}},
        "ordersCount": len(orders),
        "deliveriesCount": len(deliveries),
        "suppliersCount": len(suppliers),
        "inventoryAlertsCount": alerts["lowStockItems"],
    }


@router.get("/inventory")
async def list_inventory(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("orders.view")),
):
    items = (await db.execute(
        select(InventoryItem).options(selectinload(InventoryItem.supplier))
        .where(InventoryItem.is_active.is_(True))
        .order_by(InventoryItem.item_name)
    )).scalars().all()
    data = [_inventory_out(i) for i in items]
    return {
        "items": data,
        "count": len(data),
        "low_stock": sum(1 for i in data if i["stock_status"] == "low"),
    }


@router.get("/{order_id}")
async def get_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("orders.view")),
):
    return {"order": _order_out(await _get_order_or_404(db, order_id))}


@router.post("", status_code=201)
async def place_order(
    data: OrderCreate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("orders.manage")),
):
    project = (await db.execute(
        select(Project.id).where(Project.id == str(data.project_id))
    )).first()
    if not project:
        raise HTTPException(404, "Project not found")
    await _check_supplier(db, data.supplier_id)

    order = await create_order(
        db,
        str(data.project_id),
        items=[i.model_dump() for i in data.order_items],
        supplier_id=str(data.supplier_id) if data.supplier_id else None,
        order_date=data.order_date,
        required_date=data.required_date,
        expected_delivery_date=data.expected_delivery_date,
        priority=data.priority,
        status=data.status.value,
        delivery_address=data.delivery_address,
        delivery_instructions=data.delivery_instructions,
        notes=data.notes,
    )
    await db.commit()

    order = await _get_order_or_404(db, order.id)
    return {
        "success": True,
        "order": _order_out(order),
        "message": f"Order {order.order_number} created successfully",
    }


@router.put("/{order_id}")
async def update_order(
    order_id: uuid.UUID,
    data: OrderUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("orders.manage")),
):
    order = await _get_order_or_404(db, order_id)
    changes = data.model_dump(exclude_unset=True, exclude={"order_items"})
    if "supplier_id" in changes:
        await _check_supplier(db, data.supplier_id)
        changes["supplier_id"] = str(data.supplier_id) if data.supplier_id else None
    for field, value in changes.items():
        setattr(order, field, value)
    if data.order_items is not None:
        replace_items(order, [i.model_dump() for i in data.order_items])
    order.updated_at = utcnow()
    await db.commit()

    order = await _get_order_or_404(db, order_id)
    return {"success": True, "order": _order_out(order)}


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("orders.manage")),
):
    order = await _get_order_or_404(db, order_id)
    order.status = data.status.value
    if data.notes:
        order.notes = data.notes
    order.updated_at = utcnow()
    await db.commit()
    logger.info(f"Order {order.order_number} -> {order.status}")
    return {"success": True, "order": _order_out(order)}


@router.delete("/{order_id}")
async def delete_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_permission("orders.manage")),
):
    order = await _get_order_or_404(db, order_id)
    delivery_ids = select(Delivery.id).where(Delivery.order_id == order.id)

    counts = {}
    for table, stmt in (
        ("delivery_items", delete(DeliveryItem).where(DeliveryItem.delivery_id.in_(delivery_ids))),
        ("deliveries", delete(Delivery).where(Delivery.order_id == order.id)),
        ("order_items", delete(OrderItem).where(OrderItem.order_id == order.id)),
        ("project_orders", delete(ProjectOrder).where(ProjectOrder.id == order.id)),
    ):
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        counts[table] = result.rowcount or 0
    await db.commit()
    logger.info(f"Order {order.order_number} deleted: {counts}")
    return {"success": True, "message": "Order deleted successfully", "deleted": counts}
