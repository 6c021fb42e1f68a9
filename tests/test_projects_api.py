from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from conftest import as_user
from dashboard.db.models import Payment, Conversation, Message, Notification
from dashboard.services.project_service import (
    timeline_score, budget_score, milestone_progress, portfolio_summary,
)

JAN_1 = date(2025, 1, 1)


class TestScores:
    def test_timeline_on_track(self):
        assert timeline_score(JAN_1, JAN_1 + timedelta(days=10), today=JAN_1 + timedelta(days=5)) == 100

    def test_timeline_overdue(self):
        score = timeline_score(JAN_1, JAN_1 + timedelta(days=10), today=JAN_1 + timedelta(days=15))
        assert score == pytest.approx(50)

    def test_timeline_overdue_floor(self):
        assert timeline_score(JAN_1, JAN_1 + timedelta(days=10), today=JAN_1 + timedelta(days=40)) == 0

    def test_timeline_finished_late(self):
        score = timeline_score(JAN_1, JAN_1 + timedelta(days=10), actual=JAN_1 + timedelta(days=20))
        assert score == pytest.approx(50)

    def test_timeline_finished_early_capped(self):
        assert timeline_score(JAN_1, JAN_1 + timedelta(days=10), actual=JAN_1 + timedelta(days=5)) == 100

    def test_timeline_missing_dates(self):
        assert timeline_score(None, None) == 100

    @pytest.mark.parametrize("budget, spent, expected", [
        (100, 50, 100),
        (100, 100, 100),
        (100, 110, 80),
        (100, 150, 0),
        (100, 400, 0),
        (0, 500, 100),
    ])
    def test_budget(self, budget, spent, expected):
        assert budget_score(budget, spent) == pytest.approx(expected)

    def test_milestone_progress(self):
        ms = [
            SimpleNamespace(status="completed", progress_percentage=100),
            SimpleNamespace(status="in_progress", progress_percentage=45),
            SimpleNamespace(status="not_started", progress_percentage=None),
        ]
        assert milestone_progress(ms) == (48, 3, 1)
        assert milestone_progress([]) == (0, 0, 0)

    def test_portfolio_summary_empty(self):
        summary = portfolio_summary([])
        assert summary["totalProjects"] == 0
        assert summary["averageHealthScore"] == 0


class TestList:
    async def test_stats_and_summary(self, client, admin, project, milestones):
        resp = await client.get("/api/projects", params=as_user(admin))
        assert resp.status_code == 200
        data = resp.json()

        [p] = data["projects"]
        assert p["client"]["full_name"] == "Cleo Client"
        assert [m["milestone_name"] for m in p["milestones"]] == ["Site prep", "Foundation", "Roofing"]
        stats = p["stats"]
        assert stats["totalMilestones"] == 3
        assert stats["completedMilestones"] == 1
        assert stats["timelineScore"] == 100
        assert stats["budgetScore"] == 100
        assert stats["healthScore"] == 58

        summary = data["summary"]
        assert summary["totalProjects"] == 1
        assert summary["activeProjects"] == 1
        assert summary["projectsNeedingAttention"] == 1
        assert summary["projectsOnSchedule"] == 1
        assert summary["totalContractValue"] == 1_000_000

    async def test_payments_count_against_budget(self, client, db, admin, project):
        db.add(Payment(project_id=project.id, amount=1_100_000, status="completed"))
        await db.commit()

        resp = await client.get(f"/api/projects/{project.id}", params=as_user(admin))
        stats = resp.json()["project"]["stats"]
        assert stats["totalPayments"] == 1_100_000
        assert stats["budgetScore"] == pytest.approx(80)

    async def test_missing_project(self, client, admin):
        resp = await client.get("/api/projects/00000000-0000-0000-0000-000000000000", params=as_user(admin))
        assert resp.status_code == 404


class TestCreate:
    def payload(self, client_user, **overrides):
        data = {
            "project_name": "Durban Townhouse",
            "project_address": "4 Marine Pde",
            "contract_value": 750000,
            "start_date": "2025-03-01",
            "expected_completion": "2025-12-01",
            "client_id": client_user.id,
        }
        data.update(overrides)
        return data

    async def test_create(self, client, admin, client_user):
        resp = await client.post("/api/projects", params=as_user(admin), json=self.payload(client_user))
        assert resp.status_code == 201
        project = resp.json()["project"]
        assert project["status"] == "planning"
        assert project["progress_percentage"] == 0
        assert project["current_phase"] == "Planning"

    @pytest.mark.parametrize("overrides", [
        {"project_name": "  "},
        {"project_address": ""},
        {"contract_value": 0},
        {"client_id": "00000000-0000-0000-0000-000000000000"},
    ])
    async def test_rejects(self, client, admin, client_user, overrides):
        resp = await client.post("/api/projects", params=as_user(admin),
                                 json=self.payload(client_user, **overrides))
        assert resp.status_code == 400

    async def test_inspector_cannot_create(self, client, inspector, client_user):
        resp = await client.post("/api/projects", params=as_user(inspector), json=self.payload(client_user))
        assert resp.status_code == 403


class TestUpdate:
    async def test_partial_update(self, client, admin, project):
        resp = await client.put(f"/api/projects/{project.id}", params=as_user(admin),
                                json={"status": "on_hold", "current_phase": "Roofing"})
        assert resp.status_code == 200
        updated = resp.json()["project"]
        assert updated["status"] == "on_hold"
        assert updated["current_phase"] == "Roofing"
        assert updated["project_name"] == "Sandton Villa"

    async def test_rejects_zero_contract(self, client, admin, project):
        resp = await client.put(f"/api/projects/{project.id}", params=as_user(admin),
                                json={"contract_value": 0})
        assert resp.status_code == 400


class TestProgress:
    async def test_recalculate(self, client, admin, project, milestones):
        resp = await client.post("/api/projects/recalculate-progress", params=as_user(admin))
        assert resp.status_code == 200
        data = resp.json()
        assert data["processed"] == 1
        assert data["updated"] == 1
        [change] = data["results"]
        assert change["oldProgress"] == 0
        assert change["newProgress"] == 50
        assert change["completedCount"] == 1

        resp = await client.post("/api/projects/recalculate-progress", params=as_user(admin))
        assert resp.json()["updated"] == 0
        assert resp.json()["unchanged"] == 1

    async def test_completing_milestone_moves_project(self, client, admin, project, milestones):
        foundation = milestones[1]
        resp = await client.patch(
            f"/api/projects/{project.id}/milestones/{foundation.id}",
            params=as_user(admin), json={"status": "completed"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["milestone"]["progress_percentage"] == 100
        assert data["milestone"]["actual_end"] == date.today().isoformat()
        assert data["project_progress"] == 67
        assert data["progress_change"]["completedCount"] == 2

    async def test_milestone_of_other_project(self, client, admin, project):
        resp = await client.patch(
            f"/api/projects/{project.id}/milestones/00000000-0000-0000-0000-000000000000",
            params=as_user(admin), json={"progress_percentage": 10},
        )
        assert resp.status_code == 404

    async def test_list_milestones(self, client, admin, project, milestones):
        resp = await client.get(f"/api/projects/{project.id}/milestones", params=as_user(admin))
        assert len(resp.json()["milestones"]) == 3


class TestDelete:
    async def test_removes_dependants(self, client, db, admin, project, milestones):
        conv = Conversation(project_id=project.id, conversation_name="Site")
        db.add(conv)
        await db.flush()
        db.add_all([
            Message(conversation_id=conv.id, sender_id=admin.id, message_text="hi"),
            Payment(project_id=project.id, amount=1000),
            Notification(project_id=project.id, user_id=admin.id, title="x", notification_type="general"),
        ])
        await db.commit()

        resp = await client.delete(f"/api/projects/{project.id}", params=as_user(admin))
        assert resp.status_code == 200
        data = resp.json()
        assert data["project_name"] == "Sandton Villa"
        assert data["deleted"]["projects"] == 1
        assert data["deleted"]["project_milestones"] == 3
        assert data["deleted"]["messages"] == 1
        assert data["deleted"]["payments"] == 1
        assert data["deleted"]["notifications"] == 1

        resp = await client.get(f"/api/projects/{project.id}", params=as_user(admin))
        assert resp.status_code == 404
