"""
Tests for the HTTP API with in-memory store and room adapters.

The app is driven through httpx.ASGITransport, which does not run the
lifespan, so nothing connects to PostgreSQL or Matrix.
"""

import pytest
from fakes import BASIL_1, network_error
from httpx import ASGITransport, AsyncClient

from projekttagebuch.api.main import create_app
from projekttagebuch.services.tokens import hash_token

TOKENS = {"adam": "adam-token", "beth": "beth-token", "ruth": "ruth-token"}


@pytest.fixture
def app(store, rooms):
    for name, token in TOKENS.items():
        store.tokens[hash_token(token)] = store.persons[name].require_store_id()
    return create_app(store=store, rooms=rooms)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def auth(name: str) -> dict:
    return {"Authorization": f"Bearer {TOKENS[name]}"}


@pytest.mark.asyncio
class TestAuthentication:
    async def test_missing_token(self, client):
        response = await client.get("/api/v1/projects")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_unknown_token(self, client):
        response = await client.get("/api/v1/projects", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    async def test_whoami(self, client):
        response = await client.get("/api/v1/persons/me", headers=auth("ruth"))
        assert response.status_code == 200
        assert response.json() == {
            "name": "ruth",
            "display_name": "Ruth Rosenbaum",
            "global_permission": "admin",
        }


@pytest.mark.asyncio
class TestProjectRoutes:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_health_reports_store_outage(self, client, store):
        store.unavailable = True
        response = await client.get("/health")
        assert response.status_code == 503

    async def test_list_projects(self, client):
        response = await client.get("/api/v1/projects", headers=auth("beth"))

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["1Basil", "2Basil"]

    async def test_get_project(self, client):
        response = await client.get(f"/api/v1/projects/{BASIL_1}", headers=auth("beth"))

        body = response.json()
        assert response.status_code == 200
        assert body["members"] == [
            {"name": "adam", "display_name": "Adam Abrahamovitch", "permission": "admin"},
            {"name": "beth", "display_name": "Beth Bernstein", "permission": "user"},
        ]
        assert body["room_link"].endswith(body["room_id"])

    async def test_get_unknown_project(self, client):
        response = await client.get("/api/v1/projects/99", headers=auth("beth"))
        assert response.status_code == 404

    async def test_create_project(self, client):
        response = await client.post("/api/v1/projects", json={"name": "3Basil"}, headers=auth("ruth"))

        assert response.status_code == 201
        assert response.json()["name"] == "3Basil"
        assert response.json()["members"][0]["name"] == "ruth"

    async def test_create_project_forbidden(self, client, rooms):
        response = await client.post("/api/v1/projects", json={"name": "3Basil"}, headers=auth("adam"))

        assert response.status_code == 403
        assert rooms.calls == []

    async def test_create_project_empty_name(self, client):
        response = await client.post("/api/v1/projects", json={"name": ""}, headers=auth("ruth"))
        assert response.status_code == 422

    async def test_blank_name_is_rejected_by_action(self, client):
        response = await client.patch(
            f"/api/v1/projects/{BASIL_1}", json={"name": "  "}, headers=auth("adam")
        )
        assert response.status_code == 422

    async def test_rename_project(self, client):
        response = await client.patch(
            f"/api/v1/projects/{BASIL_1}", json={"name": "1Thyme"}, headers=auth("adam")
        )
        assert response.status_code == 200
        assert response.json()["name"] == "1Thyme"


@pytest.mark.asyncio
class TestMemberRoutes:
    async def test_add_member(self, client):
        response = await client.post(
            f"/api/v1/projects/{BASIL_1}/members", json={"name": "gamaliel"}, headers=auth("adam")
        )

        assert response.status_code == 200
        body = response.json()
        assert body["person"]["name"] == "gamaliel"
        assert [m["name"] for m in body["project"]["members"]] == ["adam", "beth", "gamaliel"]

    async def test_add_unknown_person(self, client):
        response = await client.post(
            f"/api/v1/projects/{BASIL_1}/members", json={"name": "nobody"}, headers=auth("adam")
        )
        assert response.status_code == 404

    async def test_remote_failure_returns_error_id(self, client, rooms):
        rooms.fail_with["ensure_member_present"] = network_error()

        response = await client.post(
            f"/api/v1/projects/{BASIL_1}/members", json={"name": "gamaliel"}, headers=auth("adam")
        )

        assert response.status_code == 500
        body = response.json()
        assert body["detail"] == "internal error"
        assert len(body["error_id"]) == 32

    async def test_remove_member(self, client):
        response = await client.delete(
            f"/api/v1/projects/{BASIL_1}/members/beth", headers=auth("adam")
        )

        assert response.status_code == 200
        assert [m["name"] for m in response.json()["project"]["members"]] == ["adam"]

    async def test_set_permission_forbidden(self, client):
        response = await client.put(
            f"/api/v1/projects/{BASIL_1}/members/adam/permission",
            json={"permission": "user"},
            headers=auth("beth"),
        )
        assert response.status_code == 403

    async def test_set_permission(self, client):
        response = await client.put(
            f"/api/v1/projects/{BASIL_1}/members/beth/permission",
            json={"permission": "admin"},
            headers=auth("adam"),
        )

        assert response.status_code == 200
        members = {m["name"]: m["permission"] for m in response.json()["project"]["members"]}
        assert members == {"adam": "admin", "beth": "admin"}

    async def test_set_permission_invalid_value(self, client):
        response = await client.put(
            f"/api/v1/projects/{BASIL_1}/members/beth/permission",
            json={"permission": "owner"},
            headers=auth("adam"),
        )
        assert response.status_code == 422


@pytest.mark.asyncio
class TestPersonSearch:
    async def test_search(self, client):
        response = await client.get("/api/v1/persons/search", params={"q": "bern"}, headers=auth("adam"))

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["beth"]

    async def test_query_required(self, client):
        response = await client.get("/api/v1/persons/search", headers=auth("adam"))
        assert response.status_code == 422
