"""Tests for organization lifecycle endpoints."""

from sqlmodel import Session

from aios.core.config import settings
from aios.models import User
from tests.conftest import auth_headers, seed_org, seed_user, test_engine


def test_validate_admin_code(client):
    assert client.post("/api/validate-admin-code", json={"admin_code": settings.admin_secret_code}).json() == {"valid": True}
    assert client.post("/api/validate-admin-code", json={"admin_code": "nope"}).json() == {"valid": False}


def test_validate_org_code(client):
    org_id = seed_org(name="Cabinet Moreau", org_code="ORG-MOREA")
    data = client.post("/api/organizations/validate", json={"org_code": "org-morea"}).json()
    assert data == {"valid": True, "org_id": org_id, "org_name": "Cabinet Moreau"}
    assert client.post("/api/organizations/validate", json={"org_code": "ORG-NOPE1"}).json() == {"valid": False}
    assert client.post("/api/organizations/validate", json={"org_code": ""}).json() == {"valid": False}


def test_create_organization_makes_caller_admin(client):
    response = client.post(
        "/api/organizations",
        json={"name": "Tech Solutions", "admin_code": settings.admin_secret_code, "first_name": "Thomas"},
        headers=auth_headers("founder"),
    )
    assert response.status_code == 200
    org = response.json()["organization"]
    assert org["org_code"].startswith("ORG-")
    assert len(org["org_code"]) == 9

    with Session(test_engine) as s:
        user = s.get(User, "founder")
        assert user.role == "admin"
        assert user.organization_id == org["id"]


def test_create_organization_requires_admin_code(client):
    response = client.post(
        "/api/organizations",
        json={"name": "X", "admin_code": "wrong"},
        headers=auth_headers("founder"),
    )
    assert response.status_code == 403


def test_join_organization(client):
    org_id = seed_org(org_code="ORG-JOIN2")
    response = client.post("/api/organizations/join", json={"org_code": "ORG-JOIN2"}, headers=auth_headers("newbie"))
    assert response.status_code == 200
    with Session(test_engine) as s:
        user = s.get(User, "newbie")
        assert user.role == "employee"
        assert user.organization_id == org_id


def test_join_unknown_organization(client):
    response = client.post("/api/organizations/join", json={"org_code": "ORG-XXXXX"}, headers=auth_headers("newbie"))
    assert response.status_code == 404


def test_admin_cannot_join_another_org(client):
    seed_user("boss", seed_org(), role="admin")
    seed_org(name="Other", org_code="ORG-OTHER")
    response = client.post("/api/organizations/join", json={"org_code": "ORG-OTHER"}, headers=auth_headers("boss"))
    assert response.status_code == 400


def test_get_and_update_defaults(client):
    org_id = seed_org(default_can_use_rag=True)
    seed_user("boss", org_id, role="admin")
    seed_user("emp", org_id)

    data = client.get("/api/organizations/me/defaults", headers=auth_headers("emp")).json()
    assert data["defaults"]["default_can_use_rag"] is True
    assert data["defaults"]["default_daily_prompt_limit"] is None

    response = client.patch(
        "/api/organizations/me/defaults",
        json={"default_daily_prompt_limit": 10, "default_can_upload_docs": True},
        headers=auth_headers("boss"),
    )
    assert response.status_code == 200
    assert response.json()["defaults"]["default_daily_prompt_limit"] == 10

    # Employees pick up the new defaults
    perms = client.get("/api/users/me/permissions", headers=auth_headers("emp")).json()
    assert perms["daily_prompt_limit"] == 10
    assert perms["can_upload_docs"] is True


def test_employee_cannot_update_defaults(client):
    seed_user("emp", seed_org())
    response = client.patch("/api/organizations/me/defaults", json={"default_can_use_rag": True}, headers=auth_headers("emp"))
    assert response.status_code == 403


def test_negative_default_limit_is_rejected(client):
    seed_user("boss", seed_org(), role="admin")
    response = client.patch(
        "/api/organizations/me/defaults",
        json={"default_daily_prompt_limit": -5},
        headers=auth_headers("boss"),
    )
    assert response.status_code == 422
    data = client.get("/api/organizations/me/defaults", headers=auth_headers("boss")).json()
    assert data["defaults"]["default_daily_prompt_limit"] is None
