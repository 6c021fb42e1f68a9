from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from dashboard.services.notification_filter import (
    NotificationFilter, FilterReason, alert_style, select_new,
)

ME = "11111111-1111-1111-1111-111111111111"
OTHER_ADMIN = "22222222-2222-2222-2222-222222222222"
CLIENT = "33333333-3333-3333-3333-333333333333"
ADMINS = frozenset({ME, OTHER_ADMIN})


def notif(id="n1", notification_type="general", meta=None, entity_id=None, user_id=None,
          created_at=None, priority_level="normal", is_read=False):
    return SimpleNamespace(
        id=id,
        notification_type=notification_type,
        meta=meta,
        entity_id=entity_id,
        user_id=user_id,
        created_at=created_at or datetime.now(timezone.utc),
        priority_level=priority_level,
        is_read=is_read,
    )


@pytest.fixture
def f():
    return NotificationFilter(current_user_id=ME, admin_user_ids=ADMINS)


class TestPaymentRule:
    def test_payment_suppressed(self, f):
        assert f.suppression_reason(notif(notification_type="payment")) == FilterReason.PAYMENT

    def test_payment_suppressed_without_admin_ids(self):
        f = NotificationFilter(current_user_id=None)
        assert f.suppression_reason(notif(notification_type="payment")) == FilterReason.PAYMENT

    def test_payment_kept_when_suppression_disabled(self):
        f = NotificationFilter(current_user_id=ME, admin_user_ids=ADMINS, suppress_payments=False)
        assert f.should_include(notif(notification_type="payment"))

    def test_payment_wins_over_admin_markers(self, f):
        n = notif(notification_type="payment", meta={"created_by": "admin"})
        assert f.suppression_reason(n) == FilterReason.PAYMENT


class TestAdminInitiated:
    @pytest.mark.parametrize("meta", [
        {"created_by": "admin"},
        {"sender_id": ME},
        {"admin_action": True},
        {"initiated_by": ME},
        {"source": "admin_dashboard"},
    ])
    def test_markers(self, f, meta):
        assert f.suppression_reason(notif(meta=meta)) == FilterReason.ADMIN_INITIATED

    def test_admin_action_must_be_true(self, f):
        assert f.should_include(notif(meta={"admin_action": "yes"}))

    def test_initiated_by_someone_else_kept(self, f):
        assert f.should_include(notif(meta={"initiated_by": CLIENT}))


class TestAdminSentMessage:
    def test_other_admin_sender(self, f):
        n = notif(notification_type="message", meta={"sender_id": OTHER_ADMIN})
        assert f.suppression_reason(n) == FilterReason.ADMIN_SENT_MESSAGE

    def test_from_admin_flag(self, f):
        n = notif(notification_type="message", meta={"sender_id": CLIENT, "from_admin": True})
        assert f.suppression_reason(n) == FilterReason.ADMIN_SENT_MESSAGE

    def test_admin_panel_source(self, f):
        n = notif(notification_type="message", meta={"sender_id": CLIENT, "source": "admin_panel"})
        assert f.suppression_reason(n) == FilterReason.ADMIN_SENT_MESSAGE

    @pytest.mark.parametrize("meta", [{}, {"sender_id": None}, {"sender_id": ""}, {"sender_id": "none"}])
    def test_missing_sender_treated_as_admin(self, f, meta):
        n = notif(notification_type="message", meta=meta)
        assert f.suppression_reason(n) == FilterReason.ADMIN_SENT_MESSAGE

    def test_client_message_kept(self, f):
        n = notif(notification_type="message", meta={
            "sender_id": CLIENT, "source": "mobile_app_via_communications_api",
        })
        assert f.should_include(n)

    def test_own_message_is_admin_initiated(self, f):
        # sender_id == current user matches the earlier rule first
        n = notif(notification_type="message", meta={"sender_id": ME})
        assert f.suppression_reason(n) == FilterReason.ADMIN_INITIATED

    def test_missing_sender_on_non_message_kept(self, f):
        assert f.should_include(notif(notification_type="project_update", meta={}))


class TestCurrentUserAction:
    @pytest.mark.parametrize("key", ["performed_by", "updated_by", "created_by_user_id"])
    def test_actor_keys(self, f, key):
        n = notif(notification_type="milestone", entity_id="e1", meta={key: ME})
        assert f.suppression_reason(n) == FilterReason.CURRENT_USER_ACTION

    def test_requires_entity(self, f):
        n = notif(notification_type="milestone", entity_id=None, meta={"performed_by": ME})
        assert f.should_include(n)

    def test_other_actor_kept(self, f):
        n = notif(notification_type="milestone", entity_id="e1", meta={"performed_by": OTHER_ADMIN})
        assert f.should_include(n)


class TestUnknownAdmins:
    def test_passes_through_without_admin_ids(self):
        f = NotificationFilter(current_user_id=ME, admin_user_ids=frozenset())
        assert not f.admin_rules_active
        assert f.should_include(notif(meta={"created_by": "admin"}))
        assert f.should_include(notif(notification_type="message", meta={}))

    def test_passes_through_without_current_user(self):
        f = NotificationFilter(current_user_id=None, admin_user_ids=ADMINS)
        assert f.should_include(notif(meta={"source": "admin_dashboard"}))


class TestMetadataShapes:
    @pytest.mark.parametrize("meta", [None, "not-a-dict", ["created_by", "admin"]])
    def test_non_dict_meta_is_empty(self, f, meta):
        assert f.should_include(notif(meta=meta))

    @pytest.mark.parametrize("sender_id", [{"id": "abc"}, [ME], 42])
    def test_odd_sender_id_is_not_an_admin(self, f, sender_id):
        n = notif(notification_type="message", meta={"sender_id": sender_id})
        assert f.suppression_reason(n) is None

    def test_unhashable_source(self, f):
        n = notif(notification_type="message", meta={"sender_id": CLIENT, "source": ["admin_panel"]})
        assert f.should_include(n)

    def test_feed_survives_odd_sender(self, f):
        items = [
            notif(id="a", notification_type="message", meta={"sender_id": {"id": ME}}),
            notif(id="b", notification_type="message", meta={"sender_id": OTHER_ADMIN}),
        ]
        assert [n.id for n in f.apply(items)] == ["a"]


class TestPartition:
    def test_order_preserved_and_reasons(self, f):
        items = [
            notif(id="a", meta={"sender_id": CLIENT}),
            notif(id="b", notification_type="payment"),
            notif(id="c", meta={"sender_id": CLIENT}, notification_type="project_update"),
            notif(id="d", meta={"source": "admin_dashboard"}),
        ]
        kept, suppressed = f.partition(items)
        assert [n.id for n in kept] == ["a", "c"]
        assert [(n.id, r) for n, r in suppressed] == [
            ("b", FilterReason.PAYMENT), ("d", FilterReason.ADMIN_INITIATED),
        ]
        assert [n.id for n in f.apply(items)] == ["a", "c"]

    def test_should_alert_only_for_unread_kept(self, f):
        assert f.should_alert(notif(meta={"sender_id": CLIENT}))
        assert not f.should_alert(notif(meta={"sender_id": CLIENT}, is_read=True))
        assert not f.should_alert(notif(notification_type="payment"))


class TestSelectNew:
    def test_skips_seen_and_foreign(self):
        items = [
            notif(id="a", user_id=ME),
            notif(id="b", user_id=None),
            notif(id="c", user_id=CLIENT),
            notif(id="d", user_id=ME),
        ]
        fresh = select_new(items, {"d"}, None, ME)
        assert [n.id for n in fresh] == ["a", "b"]

    def test_since_is_strict(self):
        since = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        items = [
            notif(id="old", created_at=since - timedelta(seconds=1)),
            notif(id="same", created_at=since),
            notif(id="new", created_at=since + timedelta(seconds=1)),
        ]
        assert [n.id for n in select_new(items, [], since, ME)] == ["new"]

    def test_naive_timestamps_are_utc(self):
        since = datetime(2025, 1, 1, 12, 0)
        items = [notif(id="new", created_at=datetime(2025, 1, 1, 12, 5, tzinfo=timezone.utc))]
        assert [n.id for n in select_new(items, [], since, ME)] == ["new"]


@pytest.mark.parametrize("priority, style", [
    ("urgent", "error"),
    ("high", "error"),
    ("normal", "success"),
    ("low", "info"),
    ("whatever", "default"),
    (None, "default"),
])
def test_alert_style(priority, style):
    assert alert_style(priority) == style
