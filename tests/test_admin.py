"""
Tests del flujo de aprobación, auto-asignación y estadísticas.
"""

from sqlalchemy import select

from app.models.assignment import UserAssignment
from app.models.user import UserRole, UserStatus


async def _register(client, email: str, role: str, practice_name: str) -> dict:
    response = await client.post(
        "/api/auth/register",
        json={
            "email": email,
            "password": "Secret123",
            "first_name": "Nuevo",
            "last_name": "Usuario",
            "role": role,
            "practice_name": practice_name,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestApproval:
    async def test_pending_list(self, client, admin_headers):
        await _register(client, "p1@test.com", "dentist", "Consultorio Uno")
        response = await client.get("/api/admin/pending-registrations", headers=admin_headers)
        assert response.status_code == 200
        assert [u["email"] for u in response.json()["data"]] == ["p1@test.com"]

    async def test_approve_assistant_assigns_to_dentist(
        self, client, admin_headers, dentist, db_session
    ):
        pending = await _register(client, "asis@test.com", "assistant", "Sonrisas")

        response = await client.post(
            f"/api/admin/approve/{pending['id']}", headers=admin_headers
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["status"] == "approved"
        assert data["assignment_created"] is True
        assert data["assigned_counterpart_id"] == dentist.id

        assignment = (
            await db_session.execute(
                select(UserAssignment).where(UserAssignment.assistant_id == pending["id"])
            )
        ).scalar_one()
        assert assignment.dentist_id == dentist.id

    async def test_approve_dentist_picks_up_waiting_assistant(
        self, client, admin_headers, make_user
    ):
        waiting = await make_user(
            "waiting@test.com", role=UserRole.ASSISTANT, practice_name="Dientes Sanos"
        )
        pending = await _register(client, "doc@test.com", "dentist", "Dientes Sanos")

        response = await client.post(
            f"/api/admin/approve/{pending['id']}", headers=admin_headers
        )
        data = response.json()["data"]
        assert data["assignment_created"] is True
        assert data["assigned_counterpart_id"] == waiting.id

    async def test_approve_without_counterpart(self, client, admin_headers):
        pending = await _register(client, "solo@test.com", "dentist", "Solitario")
        response = await client.post(
            f"/api/admin/approve/{pending['id']}", headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["assignment_created"] is False

    async def test_cannot_process_twice(self, client, admin_headers):
        pending = await _register(client, "twice@test.com", "dentist", "Doble")
        await client.post(f"/api/admin/reject/{pending['id']}", headers=admin_headers)

        for action in ("approve", "reject"):
            response = await client.post(
                f"/api/admin/{action}/{pending['id']}", headers=admin_headers
            )
            assert response.status_code == 404

    async def test_rejected_user_cannot_login(self, client, admin_headers):
        pending = await _register(client, "rej@test.com", "dentist", "Rechazo")
        response = await client.post(
            f"/api/admin/reject/{pending['id']}", headers=admin_headers
        )
        assert response.json()["data"]["status"] == "rejected"

        response = await client.post(
            "/api/auth/login", json={"email": "rej@test.com", "password": "Secret123"}
        )
        assert response.status_code == 401


class TestAdminQueries:
    async def test_users_filtered_and_paginated(self, client, admin_headers, dentist, assistant):
        response = await client.get(
            "/api/admin/users",
            params={"role": "assistant", "limit": 500},
            headers=admin_headers,
        )
        body = response.json()
        assert response.status_code == 200
        assert [u["id"] for u in body["data"]] == [assistant.id]
        assert body["pagination"] == {"page": 1, "limit": 100, "total": 1, "pages": 1}

    async def test_users_filtered_by_status(self, client, admin_headers, make_user):
        await make_user("p@test.com", status=UserStatus.PENDING)
        response = await client.get(
            "/api/admin/users", params={"status": "pending"}, headers=admin_headers
        )
        assert [u["email"] for u in response.json()["data"]] == ["p@test.com"]

    async def test_stats(self, client, admin_headers, dentist, patient):
        response = await client.get("/api/admin/stats", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["patients"] == {"total": 1, "active": 1, "archived": 0}
        assert data["consultations"]["total"] == 0
        assert any(u["role"] == "dentist" for u in data["users"])

    async def test_dentist_details(self, client, admin_headers, dentist, assistant, patient):
        response = await client.get(f"/api/admin/dentist/{dentist.id}", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["dentist"]["id"] == dentist.id
        assert [a["id"] for a in data["assistants"]] == [assistant.id]
        assert data["statistics"]["active_patients"] == 1

    async def test_dentist_details_unknown(self, client, admin_headers, assistant):
        response = await client.get(
            f"/api/admin/dentist/{assistant.id}", headers=admin_headers
        )
        assert response.status_code == 404
