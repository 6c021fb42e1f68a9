"""
Material orders — numbering, VAT totals, order/supplier/stock statistics.
"""
import logging
import random
import string
import time
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.db.models import (
    ProjectOrder, OrderItem, OrderStatus, Supplier, InventoryItem, DeliveryStatus, utcnow,
)

logger = logging.getLogger(__name__)

VAT_RATE = 0.15
LOW_STOCK_THRESHOLD = 10
CRITICAL_STOCK_LEVEL = 5
BASE36 = string.digits + string.ascii_uppercase

PENDING_STATUSES = {OrderStatus.PENDING.value, OrderStatus.PENDING_APPROVAL.value}


def _base36(n: int) -> str:
    digits = ""
    while True:
        n, r = divmod(n, 36)
        digits = BASE36[r] + digits
        if not n:
            return digits


def generate_order_number() -> str:
    """ORD-<millisecond clock in base 36>-<6 random base-36 characters>."""
    suffix = "".join(random.choices(BASE36, k=6))
    return f"ORD-{_base36(int(time.time() * 1000))}-{suffix}"


def _number(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def order_totals(items: list[dict]) -> dict:
    subtotal = sum(_number(i.get("quantity_ordered")) * _number(i.get("unit_cost")) for i in items)
    tax = subtotal * VAT_RATE
    return {"subtotal": subtotal, "tax_amount": tax, "total_amount": subtotal + tax}


def build_items(items: list[dict]) -> list[OrderItem]:
    return [
        OrderItem(
            line_number=index,
            item_description=item.get("item_description") or "",
            quantity_ordered=_number(item.get("quantity_ordered")),
            quantity_delivered=_number(item.get("quantity_delivered")),
            unit_of_measure=item.get("unit_of_measure") or "pieces",
            unit_cost=_number(item.get("unit_cost")),
            delivery_status=item.get("delivery_status") or "pending",
            specifications=item.get("specifications") or "",
            notes=item.get("notes") or "",
        )
        for index, item in enumerate(items, start=1)
    ]


async def create_order(session: AsyncSession, project_id: str, items: list[dict] | None = None,
                       **fields) -> ProjectOrder:
    items = items or []
    order = ProjectOrder(
        project_id=project_id,
        order_number=generate_order_number(),
        order_date=fields.pop("order_date", None) or utcnow().date(),
        status=fields.pop("status", None) or OrderStatus.DRAFT.value,
        priority=fields.pop("priority", None) or "medium",
        currency="ZAR",
        payment_status="pending",
        items=build_items(items),
        **order_totals(items),
        **fields,
    )
    session.add(order)
    await session.flush()
    logger.info(f"Order {order.order_number} created: {len(items)} lines, total {order.total_amount:.2f}")
    return order


def replace_items(order: ProjectOrder, items: list[dict]):
    """Swap every line of an order (items must be loaded) and recompute its totals."""
    order.items = build_items(items)
    for key, value in order_totals(items).items():
        setattr(order, key, value)


def line_total(item: OrderItem) -> float:
    return (item.quantity_ordered or 0) * (item.unit_cost or 0)


def order_stats(orders: list[ProjectOrder]) -> dict:
    total_value = sum(o.total_amount or 0 for o in orders)

    def count(status: OrderStatus) -> int:
        return sum(1 for o in orders if o.status == status.value)

    return {
        "totalOrders": len(orders),
        "pendingOrders": sum(1 for o in orders if o.status in PENDING_STATUSES),
        "confirmedOrders": count(OrderStatus.CONFIRMED),
        "deliveredOrders": count(OrderStatus.DELIVERED),
        "totalOrderValue": total_value,
        "averageOrderValue": total_value / len(orders) if orders else 0,
    }


def order_delivery_stats(deliveries: list) -> dict:
    completed = sum(1 for d in deliveries if d.delivery_status == DeliveryStatus.COMPLETED.value)
    return {
        "totalDeliveries": len(deliveries),
        "pendingDeliveries": sum(
            1 for d in deliveries if d.delivery_status == DeliveryStatus.SCHEDULED.value
        ),
        "completedDeliveries": completed,
        "deliverySuccessRate": completed / len(deliveries) * 100 if deliveries else 0,
    }


def supplier_stats(suppliers: list[Supplier]) -> dict:
    return {
        "totalSuppliers": len(suppliers),
        "activeSuppliers": sum(1 for s in suppliers if s.status == "active"),
        "averageRating": (
            sum(s.rating or 0 for s in suppliers) / len(suppliers) if suppliers else 0
        ),
    }


def stock_status(item: InventoryItem) -> str:
    return "low" if (item.current_stock or 0) <= (item.min_stock_level or 0) else "normal"


def inventory_alerts(items: list[InventoryItem]) -> dict:
    low = [i for i in items if (i.current_stock or 0) < LOW_STOCK_THRESHOLD]
    return {
        "lowStockItems": len(low),
        "criticalItems": sum(1 for i in low if (i.current_stock or 0) <= CRITICAL_STOCK_LEVEL),
        "items": low,
    }
