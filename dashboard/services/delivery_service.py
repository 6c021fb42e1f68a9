import logging
import random
import string
import time
from sqlalchemy.ext.asyncio import AsyncSession
from dashboard.db.models import Delivery, DeliveryItem, DeliveryStatus, utcnow
from dashboard.utils.formatters import as_utc

logger = logging.getLogger(__name__)

NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_delivery_number() -> str:
    """DEL- + last 6 digits of the millisecond clock + 3 random characters."""
    stamp = str(int(time.time() * 1000))[-6:]
    suffix = "".join(random.choices(NUMBER_ALPHABET, k=3))
    return f"DEL-{stamp}{suffix}"


def vehicle_info(vehicle_type: str | None, registration: str | None) -> str | None:
    if not vehicle_type and not registration:
        return None
    return f"{vehicle_type or ''} - {registration or ''}"


def is_on_time(d: Delivery) -> bool:
    if d.delivery_status != DeliveryStatus.COMPLETED.value:
        return False
    if not d.actual_arrival_time or not d.delivery_date:
        return False
    return as_utc(d.actual_arrival_time).date() <= d.delivery_date


def delivery_stats(deliveries: list[Delivery]) -> dict:
    total = len(deliveries)

    def count(status: DeliveryStatus) -> int:
        return sum(1 for d in deliveries if d.delivery_status == status.value)

    completed = count(DeliveryStatus.COMPLETED)
    return {
        "totalDeliveries": total,
        "scheduledDeliveries": count(DeliveryStatus.SCHEDULED),
        "inTransitDeliveries": count(DeliveryStatus.IN_TRANSIT),
        "completedDeliveries": completed,
        "cancelledDeliveries": count(DeliveryStatus.CANCELLED),
        "avgCompletionPercentage": round(completed / total * 100) if total else 0,
        "onTimeDeliveries": sum(1 for d in deliveries if is_on_time(d)),
    }


async def create_delivery(session: AsyncSession, order_id: str, items: list[dict] | None = None,
                          **fields) -> Delivery:
    rows = []
    for item in items or []:
        qty = item.get("quantity_to_deliver") or 0
        rows.append(DeliveryItem(
            order_item_id=item.get("order_item_id"),
            quantity_delivered=qty,
            quantity_accepted=qty,
            quantity_rejected=0,
            condition_on_arrival="good",
            quality_check_passed=True,
            quality_notes=item.get("notes") or "",
        ))
    delivery = Delivery(
        order_id=order_id,
        delivery_number=generate_delivery_number(),
        delivery_status=fields.pop("delivery_status", None) or DeliveryStatus.SCHEDULED.value,
        delivery_photos=fields.pop("delivery_photos", None) or [],
        items=rows,
        **fields,
    )
    session.add(delivery)
    await session.flush()
    logger.info(f"Delivery {delivery.delivery_number} created with {len(rows)} items")
    return delivery


def set_status(delivery: Delivery, status: str):
    delivery.delivery_status = status
    delivery.updated_at = utcnow()
    if status == DeliveryStatus.COMPLETED.value:
        delivery.actual_arrival_time = utcnow()


def confirm(delivery: Delivery, recipient_name: str | None, photos: list[str] | None,
            notes: str | None):
    set_status(delivery, DeliveryStatus.COMPLETED.value)
    delivery.received_by_name = recipient_name
    delivery.delivery_photos = photos or []
    delivery.notes = notes
