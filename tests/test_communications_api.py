from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import as_user, at
from dashboard.db.models import Conversation, Message, Notification


@pytest.fixture
async def conversation(db, project, client_user):
    conv = Conversation(project_id=project.id, conversation_name="Site", participants=[client_user.id],
                        last_message_at=at(30))
    db.add(conv)
    await db.commit()
    return conv


async def add_message(db, conversation, sender, text, **kwargs) -> Message:
    m = Message(conversation_id=conversation.id, sender_id=sender.id, message_text=text, **kwargs)
    db.add(m)
    await db.commit()
    return m


class TestConversations:
    async def test_list_with_unread(self, client, db, admin, client_user, conversation):
        await add_message(db, conversation, client_user, "When is the slab poured?", created_at=at(20))
        await add_message(db, conversation, client_user, "Hello?", created_at=at(10))
        await add_message(db, conversation, admin, "Tomorrow", created_at=at(5))

        resp = await client.get("/api/communications", params=as_user(admin))
        assert resp.status_code == 200
        data = resp.json()
        assert data["stats"] == {
            "totalConversations": 1,
            "totalMessages": 3,
            "unreadMessages": 2,
            "activeConversations": 1,
        }
        [conv] = data["conversations"]
        assert conv["project_name"] == "Sandton Villa"
        assert conv["client_name"] == "Cleo Client"
        assert conv["last_message"] == "Tomorrow"
        assert conv["message_count"] == 3
        assert conv["unread_count"] == 2
        assert conv["status"] == "active"

    async def test_messages_and_read_receipts(self, client, db, admin, client_user, conversation):
        m = await add_message(db, conversation, client_user, "See attached",
                              attachment_urls=["https://cdn.test/files/plan.pdf"])

        resp = await client.get(f"/api/communications/conversations/{conversation.id}/messages",
                                params=as_user(admin))
        [out] = resp.json()["messages"]
        assert out["sender_name"] == "Cleo Client"
        assert out["is_read"] is False
        assert out["attachments"][0]["filename"] == "plan.pdf"
        assert out["attachments"][0]["file_type"] == "application/pdf"

        resp = await client.post(f"/api/communications/messages/{m.id}/read", params=as_user(admin))
        assert admin.id in resp.json()["read_by"]

        resp = await client.get("/api/communications", params=as_user(admin))
        assert resp.json()["stats"]["unreadMessages"] == 0

    async def test_mark_conversation_read(self, client, db, admin, client_user, conversation):
        await add_message(db, conversation, client_user, "One")
        await add_message(db, conversation, client_user, "Two")

        resp = await client.post(f"/api/communications/conversations/{conversation.id}/read",
                                 params=as_user(admin))
        assert resp.json()["marked"] == 2

        resp = await client.get(f"/api/communications/conversations/{conversation.id}/messages",
                                params=as_user(admin))
        assert all(m["is_read"] for m in resp.json()["messages"])
        assert resp.json()["conversation"]["unread_count"] == 0

    async def test_missing_conversation(self, client, admin):
        resp = await client.get(
            "/api/communications/conversations/00000000-0000-0000-0000-000000000000/messages",
            params=as_user(admin),
        )
        assert resp.status_code == 404


class TestSend:
    async def test_admin_reply_is_tagged(self, client, admin, conversation):
        resp = await client.post(f"/api/communications/conversations/{conversation.id}/messages",
                                 params=as_user(admin), json={"content": "On our way"})
        assert resp.status_code == 201
        meta = resp.json()["message"]["metadata"]
        assert meta["source"] == "admin_dashboard"
        assert meta["from_admin"] is True
        assert meta["sender_id"] == admin.id

        resp = await client.get("/api/communications", params=as_user(admin))
        [conv] = resp.json()["conversations"]
        assert conv["last_message"] == "On our way"

    async def test_blank_content(self, client, admin, conversation):
        resp = await client.post(f"/api/communications/conversations/{conversation.id}/messages",
                                 params=as_user(admin), json={"content": "   "})
        assert resp.status_code == 400

    async def test_inspector_cannot_send(self, client, inspector, conversation):
        resp = await client.post(f"/api/communications/conversations/{conversation.id}/messages",
                                 params=as_user(inspector), json={"content": "hi"})
        assert resp.status_code == 403


class TestInbound:
    async def test_client_message_alerts_every_admin(
        self, client, db, admin, other_admin, client_user, conversation,
    ):
        resp = await client.post("/api/communications/inbound", params=as_user(admin), json={
            "conversation_id": conversation.id,
            "sender_id": client_user.id,
            "message_text": "The crane is blocking my driveway",
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["notified_admins"] == 2
        assert data["message"]["metadata"]["source"] == "mobile_app"

        rows = (await db.execute(
            select(Notification.user_id, Notification.title, Notification.meta)
            .where(Notification.notification_type == "message")
        )).all()
        assert {user_id for user_id, _, _ in rows} == {admin.id, other_admin.id}
        _, title, meta = rows[0]
        assert title == "New message in Sandton Villa - Site"
        assert meta["sender_id"] == client_user.id
        assert meta["source"] == "mobile_app_via_communications_api"

        resp = await client.get("/api/notifications", params=as_user(admin))
        [alert] = resp.json()["notifications"]
        assert alert["should_alert"] is True

    async def test_admin_sender_creates_no_alerts(self, client, admin, other_admin, conversation):
        resp = await client.post("/api/communications/inbound", params=as_user(admin), json={
            "conversation_id": conversation.id,
            "sender_id": other_admin.id,
            "message_text": "Internal note",
        })
        assert resp.status_code == 201
        assert resp.json()["notified_admins"] == 0

    async def test_unknown_sender(self, client, admin, conversation):
        resp = await client.post("/api/communications/inbound", params=as_user(admin), json={
            "conversation_id": conversation.id,
            "sender_id": "00000000-0000-0000-0000-000000000000",
            "message_text": "Hi",
        })
        assert resp.status_code == 404


class TestBroadcast:
    async def test_to_clients(self, client, db, admin, other_admin, client_user):
        resp = await client.post("/api/communications/broadcast", params=as_user(admin), json={
            "subject": "Site closed Friday",
            "message": "Public holiday",
            "target_audience": "clients",
            "priority": "high",
        })
        assert resp.status_code == 201
        assert resp.json()["recipients"] == 1

        [n] = (await db.execute(select(Notification))).scalars().all()
        assert n.user_id == client_user.id
        assert n.priority_level == "high"
        assert n.meta["broadcast"] is True
        assert n.meta["target_audience"] == "clients"

    async def test_to_everyone_is_hidden_from_admin_feed(self, client, admin, other_admin, client_user):
        resp = await client.post("/api/communications/broadcast", params=as_user(admin), json={
            "subject": "Welcome", "message": "New portal",
        })
        assert resp.json()["recipients"] == 3

        resp = await client.get("/api/notifications", params=as_user(other_admin))
        assert resp.json()["notifications"] == []
        assert resp.json()["filtered_out"] == 1

    async def test_scheduled(self, client, db, admin, client_user):
        when = (at(0) + timedelta(days=2)).replace(microsecond=0)
        resp = await client.post("/api/communications/broadcast", params=as_user(admin), json={
            "subject": "Inspection", "message": "Next week", "target_audience": "client",
            "schedule_date": when.isoformat(),
        })
        assert resp.json()["recipients"] == 1
        [created_at] = (await db.execute(select(Notification.created_at))).scalars().all()
        assert created_at.replace(tzinfo=None) == when.replace(tzinfo=None)

    async def test_unknown_audience(self, client, admin):
        resp = await client.post("/api/communications/broadcast", params=as_user(admin), json={
            "subject": "x", "message": "y", "target_audience": "martians",
        })
        assert resp.status_code == 400
