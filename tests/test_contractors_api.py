from datetime import date

import pytest

from conftest import as_user
from dashboard.db.models import Contractor, ProjectContractor


async def add_contractor(db, **kwargs) -> Contractor:
    kwargs.setdefault("contractor_name", "Thabo Builders")
    kwargs.setdefault("company_name", "Thabo Builders (Pty) Ltd")
    kwargs.setdefault("primary_contact_name", "Thabo")
    kwargs.setdefault("email", "thabo@builders.test")
    kwargs.setdefault("phone", "+27820000000")
    kwargs.setdefault("trade_specialization", "masonry")
    c = Contractor(**kwargs)
    db.add(c)
    await db.commit()
    return c


class TestDirectory:
    async def test_stats(self, client, db, admin):
        await add_contractor(db, overall_rating=4.0, verification_status="verified",
                             contractor_source="korabuild_verified")
        await add_contractor(db, contractor_name="Sipho Electric", overall_rating=3.0,
                             verification_status="pending", status="inactive")

        resp = await client.get("/api/contractors", params=as_user(admin))
        assert resp.status_code == 200
        stats = resp.json()["stats"]
        assert stats["totalContractors"] == 2
        assert stats["activeContractors"] == 1
        assert stats["verifiedContractors"] == 1
        assert stats["pendingContractors"] == 1
        assert stats["userAddedContractors"] == 1
        assert stats["korabuildVerifiedContractors"] == 1
        assert stats["averageRating"] == pytest.approx(3.5)

    async def test_empty(self, client, admin):
        stats = (await client.get("/api/contractors", params=as_user(admin))).json()["stats"]
        assert stats["totalContractors"] == 0
        assert stats["averageRating"] == 0


class TestAddContractor:
    async def test_add(self, client, admin):
        resp = await client.post("/api/contractors", params=as_user(admin), json={
            "contractor_name": "Lerato Plumbing",
            "company_name": "Lerato Plumbing CC",
            "email": "lerato@plumb.test",
            "phone": "+27830000000",
            "trade_specialization": "plumbing",
        })
        assert resp.status_code == 201
        c = resp.json()["contractor"]
        assert c["primary_contact_name"] == "Lerato Plumbing"
        assert c["verification_status"] == "pending"
        assert c["contractor_source"] == "user_added"
        assert c["status"] == "active"

    async def test_missing_fields_listed(self, client, admin):
        resp = await client.post("/api/contractors", params=as_user(admin), json={
            "contractor_name": "X", "company_name": "", "email": "x@x.test",
            "phone": " ", "trade_specialization": "roofing",
        })
        assert resp.status_code == 400
        assert "company_name" in resp.json()["detail"]
        assert "phone" in resp.json()["detail"]

    async def test_inspector_cannot_add(self, client, inspector):
        resp = await client.post("/api/contractors", params=as_user(inspector), json={
            "contractor_name": "X", "company_name": "Y", "email": "x@x.test",
            "phone": "1", "trade_specialization": "roofing",
        })
        assert resp.status_code == 403

    async def test_update(self, client, db, admin):
        c = await add_contractor(db)
        resp = await client.put(f"/api/contractors/{c.id}", params=as_user(admin),
                                json={"verification_status": "verified", "status": "suspended"})
        assert resp.status_code == 200
        assert resp.json()["contractor"]["verification_status"] == "verified"
        assert resp.json()["contractor"]["status"] == "suspended"

    async def test_update_missing(self, client, admin):
        resp = await client.put("/api/contractors/00000000-0000-0000-0000-000000000000",
                                params=as_user(admin), json={"status": "active"})
        assert resp.status_code == 404


class TestAssignments:
    async def test_assign_and_project_view(self, client, db, admin, project):
        c = await add_contractor(db)

        resp = await client.post("/api/contractors/assignments", params=as_user(admin), json={
            "project_id": project.id,
            "contractor_id": c.id,
            "scope_of_work": "Foundations and walls",
            "start_date": date.today().isoformat(),
            "contract_value": 200_000,
        })
        assert resp.status_code == 201
        assignment = resp.json()["assignment"]
        assert assignment["contract_status"] == "pending_approval"
        assert assignment["on_site_status"] == "scheduled"
        assert assignment["contractor"]["contractor_name"] == "Thabo Builders"

        resp = await client.put(f"/api/contractors/assignments/{assignment['id']}", params=as_user(admin),
                                json={"contract_status": "active", "on_site_status": "on_site",
                                      "work_completion_percentage": 40})
        assert resp.status_code == 200
        assert resp.json()["assignment"]["contract_status"] == "active"

        resp = await client.get("/api/contractors", params={**as_user(admin), "project_id": project.id})
        data = resp.json()
        assert len(data["projectContractors"]) == 1
        assert data["projectContractors"][0]["contractor"]["id"] == c.id
        assert data["stats"] == {
            "totalContractors": 1,
            "activeContractors": 1,
            "onSiteContractors": 1,
            "completedContractors": 0,
            "totalContractValue": 200_000,
            "averageCompletion": 40,
        }

    async def test_directory_lists_assignments(self, client, db, admin, project):
        c = await add_contractor(db)
        db.add(ProjectContractor(project_id=project.id, contractor_id=c.id, scope_of_work="Roof",
                                 start_date=date.today()))
        await db.commit()

        resp = await client.get("/api/contractors", params=as_user(admin))
        [listed] = resp.json()["contractors"]
        assert len(listed["assignments"]) == 1

    async def test_assign_unknown_contractor(self, client, admin, project):
        resp = await client.post("/api/contractors/assignments", params=as_user(admin), json={
            "project_id": project.id,
            "contractor_id": "00000000-0000-0000-0000-000000000000",
            "scope_of_work": "Roof",
            "start_date": date.today().isoformat(),
        })
        assert resp.status_code == 404

    async def test_assign_unknown_project(self, client, db, admin):
        c = await add_contractor(db)
        resp = await client.post("/api/contractors/assignments", params=as_user(admin), json={
            "project_id": "00000000-0000-0000-0000-000000000000",
            "contractor_id": c.id,
            "scope_of_work": "Roof",
            "start_date": date.today().isoformat(),
        })
        assert resp.status_code == 404

    async def test_update_missing_assignment(self, client, admin):
        resp = await client.put("/api/contractors/assignments/00000000-0000-0000-0000-000000000000",
                                params=as_user(admin), json={"contract_status": "active"})
        assert resp.status_code == 404
