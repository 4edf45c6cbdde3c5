"""Tests for authentication and user management endpoints."""

import pytest
from httpx import AsyncClient

from tradeledger.auth.jwt import create_refresh_token
from tradeledger.auth.permissions import resolve_permissions
from tradeledger.models.user import User


@pytest.mark.auth
@pytest.mark.asyncio
class TestAuthEndpoints:
    """Login, refresh, current user and password change."""

    async def test_login_success(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/api/auth/login",
            json={"username": "manager", "password": "testpassword123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["user"]["role"] == "manager"
        assert "backup.manage" in data["user"]["permissions"]

    async def test_login_invalid_password(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/api/auth/login",
            json={"username": "manager", "password": "wrongpassword"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"

    async def test_login_unknown_user(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"username": "nobody", "password": "whatever1"},
        )
        assert response.status_code == 401

    async def test_me(self, client: AsyncClient, viewer_headers: dict):
        response = await client.get("/api/auth/me", headers=viewer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "viewer"
        assert "payments.read" not in data["permissions"]
        assert "parties.read" in data["permissions"]

    async def test_invalid_token(self, client: AsyncClient):
        response = await client.get(
            "/api/auth/me", headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_missing_permission(self, client: AsyncClient, viewer_headers: dict):
        response = await client.get("/api/payments/", headers=viewer_headers)
        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "PERMISSION_DENIED"
        assert "payments.read" in error["message"]

    async def test_refresh_token_cannot_authenticate(self, client: AsyncClient, test_user: User):
        token = create_refresh_token(user_id=test_user.id, role="manager")
        response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_refresh(self, client: AsyncClient, test_user: User):
        login = await client.post(
            "/api/auth/login",
            json={"username": "manager", "password": "testpassword123"},
        )
        response = await client.post(
            "/api/auth/refresh", json={"refresh_token": login.json()["refresh_token"]}
        )

        assert response.status_code == 200
        headers = {"Authorization": f"Bearer {response.json()['access_token']}"}
        me = await client.get("/api/auth/me", headers=headers)
        assert me.json()["id"] == test_user.id

    async def test_refresh_rejects_access_token(self, client: AsyncClient, test_user: User):
        login = await client.post(
            "/api/auth/login",
            json={"username": "manager", "password": "testpassword123"},
        )
        response = await client.post(
            "/api/auth/refresh", json={"refresh_token": login.json()["access_token"]}
        )
        assert response.status_code == 401

    async def test_change_password(self, client: AsyncClient, auth_headers: dict):
        response = await client.post(
            "/api/auth/change-password",
            headers=auth_headers,
            json={"current_password": "testpassword123", "new_password": "newsecret1"},
        )
        assert response.status_code == 200

        old = await client.post(
            "/api/auth/login", json={"username": "manager", "password": "testpassword123"}
        )
        assert old.status_code == 401
        new = await client.post(
            "/api/auth/login", json={"username": "manager", "password": "newsecret1"}
        )
        assert new.status_code == 200

    async def test_change_password_wrong_current(self, client: AsyncClient, auth_headers: dict):
        response = await client.post(
            "/api/auth/change-password",
            headers=auth_headers,
            json={"current_password": "nope", "new_password": "newsecret1"},
        )
        assert response.status_code == 400

    async def test_change_password_too_short(self, client: AsyncClient, auth_headers: dict):
        response = await client.post(
            "/api/auth/change-password",
            headers=auth_headers,
            json={"current_password": "testpassword123", "new_password": "abc"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.api
@pytest.mark.asyncio
class TestUserManagement:
    """Managers create and edit accounts."""

    async def test_create_and_login(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/users/", headers=auth_headers, json={
            "username": "clerk",
            "password": "clerkpass",
            "full_name": "Desk Clerk",
            "role": "accountant",
        })
        assert response.status_code == 201
        assert "payments.write" in response.json()["permissions"]

        login = await client.post(
            "/api/auth/login", json={"username": "clerk", "password": "clerkpass"}
        )
        assert login.status_code == 200

    async def test_duplicate_username(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/users/", headers=auth_headers, json={
            "username": "manager", "password": "whatever1", "full_name": "Dup",
        })
        assert response.status_code == 400

    async def test_custom_permissions(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/users/", headers=auth_headers, json={
            "username": "auditor",
            "password": "auditpass",
            "full_name": "Auditor",
            "role": "viewer",
            "custom_permissions": {"reports.read": True, "inventory.read": False},
        })
        permissions = response.json()["permissions"]
        assert "reports.read" in permissions
        assert "inventory.read" not in permissions

    async def test_deactivated_user_cannot_login(self, client: AsyncClient, auth_headers: dict):
        created = (await client.post("/api/users/", headers=auth_headers, json={
            "username": "temp", "password": "temppass", "full_name": "Temp",
        })).json()
        response = await client.patch(
            f"/api/users/{created['id']}", headers=auth_headers, json={"is_active": False}
        )
        assert response.json()["is_active"] is False

        login = await client.post(
            "/api/auth/login", json={"username": "temp", "password": "temppass"}
        )
        assert login.status_code == 403

    async def test_cannot_demote_self(self, client: AsyncClient, auth_headers: dict, test_user: User):
        response = await client.patch(
            f"/api/users/{test_user.id}", headers=auth_headers, json={"role": "viewer"}
        )
        assert response.status_code == 400

    async def test_viewer_cannot_manage_users(self, client: AsyncClient, viewer_headers: dict):
        response = await client.get("/api/users/", headers=viewer_headers)
        assert response.status_code == 403


@pytest.mark.unit
class TestPermissions:

    def test_overrides_ignore_unknown(self):
        perms = resolve_permissions("viewer", {"launch.rockets": True, "parties.read": False})
        assert "launch.rockets" not in perms
        assert "parties.read" not in perms

    def test_unknown_role_has_nothing(self):
        assert resolve_permissions("intern") == []
