"""
Notification filter — decides which notifications reach an admin's feed.

Database triggers write a notification for almost every change on the
platform, including the changes admins make themselves from this dashboard.
An admin should only be alerted about activity that came from outside
(clients, contractors, the mobile app), so anything whose metadata points
back at an admin is suppressed here.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

logger = logging.getLogger(__name__)

ADMIN_MESSAGE_SOURCES = {"admin_panel", "admin_dashboard"}
MISSING_SENDER_VALUES = {None, "", "none"}
ACTOR_KEYS = ("performed_by", "updated_by", "created_by_user_id")

ALERT_STYLES = {
    "urgent": "error",
    "high": "error",
    "normal": "success",
    "low": "info",
}


class FilterReason(str, enum.Enum):
    PAYMENT = "payment"
    ADMIN_INITIATED = "admin_initiated"
    ADMIN_SENT_MESSAGE = "admin_sent_message"
    CURRENT_USER_ACTION = "current_user_action"


def _meta(notification: Any) -> dict:
    meta = getattr(notification, "meta", None)
    return meta if isinstance(meta, dict) else {}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def alert_style(priority_level: str | None) -> str:
    """Toast style for a notification priority."""
    return ALERT_STYLES.get(priority_level or "", "default")


@dataclass
class NotificationFilter:
    current_user_id: str | None
    admin_user_ids: frozenset[str] = field(default_factory=frozenset)
    suppress_payments: bool = True

    @property
    def admin_rules_active(self) -> bool:
        # Without the admin list every message would look admin-sent,
        # so the feed passes through until it is known.
        return bool(self.current_user_id) and bool(self.admin_user_ids)

    def suppression_reason(self, notification: Any) -> FilterReason | None:
        ntype = getattr(notification, "notification_type", None)
        if self.suppress_payments and ntype == "payment":
            return FilterReason.PAYMENT

        if not self.admin_rules_active:
            return None

        meta = _meta(notification)
        me = self.current_user_id

        if (
            meta.get("created_by") == "admin"
            or meta.get("sender_id") == me
            or meta.get("admin_action") is True
            or meta.get("initiated_by") == me
            or meta.get("source") == "admin_dashboard"
        ):
            return FilterReason.ADMIN_INITIATED

        if ntype == "message":
            sender_id = meta.get("sender_id")
            # Trigger-written JSON can hold any shape here; only ids and null count.
            plain_sender = sender_id is None or isinstance(sender_id, str)
            source = meta.get("source")
            if (
                sender_id == me
                or meta.get("from_admin") is True
                or (isinstance(source, str) and source in ADMIN_MESSAGE_SOURCES)
                or (plain_sender and sender_id in self.admin_user_ids)
                or (plain_sender and sender_id in MISSING_SENDER_VALUES)
            ):
                return FilterReason.ADMIN_SENT_MESSAGE

        if getattr(notification, "entity_id", None) and any(
            meta.get(key) == me for key in ACTOR_KEYS
        ):
            return FilterReason.CURRENT_USER_ACTION

        return None

    def should_include(self, notification: Any) -> bool:
        return self.suppression_reason(notification) is None

    def partition(self, notifications: Iterable[Any]) -> tuple[list, list[tuple[Any, FilterReason]]]:
        kept, suppressed = [], []
        for n in notifications:
            reason = self.suppression_reason(n)
            if reason is None:
                kept.append(n)
            else:
                logger.debug(f"Suppressed notification {getattr(n, 'id', None)}: {reason.value}")
                suppressed.append((n, reason))
        return kept, suppressed

    def apply(self, notifications: Iterable[Any]) -> list:
        kept, _ = self.partition(notifications)
        return kept

    def should_alert(self, notification: Any) -> bool:
        return not getattr(notification, "is_read", False) and self.should_include(notification)


def select_new(
    notifications: Sequence[Any],
    seen_ids: Iterable[str],
    since: datetime | None,
    user_id: str | None,
) -> list:
    """Polling de-dup: unseen, addressed to the user (or to nobody), newer than `since`."""
    seen = set(seen_ids)
    since_utc = _as_utc(since) if since else None
    fresh = []
    for n in notifications:
        if n.id in seen:
            continue
        if n.user_id and n.user_id != user_id:
            continue
        if since_utc and (n.created_at is None or _as_utc(n.created_at) <= since_utc):
            continue
        fresh.append(n)
    return fresh
