"""
TalentDesk Backend: API Integration Tests
=========================================

What:  The HTTP surface: status codes, the error body shape, request ids,
       authentication and permission checks.
How:   httpx AsyncClient over ASGITransport. The session dependency yields
       a mock, and `login_as` replaces the session-cookie lookup.
"""

import uuid
from types import SimpleNamespace


class TestHealth:
    async def test_health_reports_database(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"

    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    async def test_request_id_generated(self, test_client):
        response = await test_client.get("/health")
        assert response.headers.get("X-Request-ID")


class TestAuthentication:
    async def test_me_without_session(self, test_client):
        response = await test_client.get("/api/auth/me")

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "unauthorized"
        assert body["request_id"] == response.headers["X-Request-ID"]

    async def test_garbage_bearer_token(self, test_client):
        response = await test_client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    async def test_login_body_validated(self, test_client):
        response = await test_client.post("/api/auth/login", json={})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        fields = {tuple(err["loc"])[-1] for err in body["details"]["errors"]}
        assert {"email", "password"} <= fields

    async def test_login_unknown_user(self, test_client, mock_db_session, db_result):
        mock_db_session.execute.return_value = db_result(scalar=None)

        response = await test_client.post(
            "/api/auth/login", json={"email": "ghost@acme.io", "password": "whatever"}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    async def test_me_lists_permissions(self, test_client, login_as):
        login_as("VIEWER")

        response = await test_client.get("/api/auth/me")

        assert response.status_code == 200
        assert sorted(response.json()["permissions"]) == ["CANDIDATE_VIEW", "NOTE_VIEW", "PIPELINE_VIEW"]


class TestPermissions:
    async def test_viewer_cannot_create_pipeline(self, test_client, login_as):
        login_as("VIEWER")

        response = await test_client.post("/api/pipelines", json={"name": "Backend"})

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_recruiter_cannot_list_users(self, test_client, login_as):
        login_as("RECRUITER")
        response = await test_client.get("/api/users")
        assert response.status_code == 403

    async def test_unassigned_pipeline_forbidden(self, test_client, login_as, mock_db_session, db_result):
        login_as("RECRUITER")
        pipeline_id = uuid.uuid4()
        mock_db_session.execute.side_effect = [
            db_result(scalar=SimpleNamespace(id=pipeline_id)),  # pipeline lookup
            db_result(scalars=[]),  # caller's assignments
        ]

        response = await test_client.get(f"/api/pipelines/{pipeline_id}")

        assert response.status_code == 403
        assert response.json()["details"]["pipeline_id"] == str(pipeline_id)


class TestErrors:
    async def test_unknown_candidate(self, test_client, login_as, mock_db_session, db_result):
        login_as("ADMIN")
        mock_db_session.execute.return_value = db_result(scalar=None)

        response = await test_client.get(f"/api/candidates/{uuid.uuid4()}")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["message"] == "Candidate not found"

    async def test_malformed_path_id(self, test_client, login_as):
        login_as("ADMIN")
        response = await test_client.get("/api/candidates/not-a-uuid")
        assert response.status_code == 400

    async def test_analytics_days_bounds(self, test_client, login_as):
        login_as("ADMIN")
        response = await test_client.get("/api/analytics", params={"days": 0})
        assert response.status_code == 400
