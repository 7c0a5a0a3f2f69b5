"""End-to-end tests for the HTTP API."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import Account
from clinicflow.core.change_feed import ChangeFeed
from clinicflow.dependencies import get_cache_manager, get_feed
from clinicflow.main import app
from clinicflow.services.identity_service import translate_provider_error
from factories import auth_headers, make_account, signed_up

API = "/api/v1"


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client: AsyncClient):
        response = await client.get(f"{API}/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_ping(self, client: AsyncClient):
        response = await client.get(f"{API}/ping")
        assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
class TestAuthEndpoints:
    async def test_sign_up_returns_pending_access(self, client: AsyncClient):
        with patch("clinicflow.api.v1.endpoints.auth.IdentityService") as identity_cls:
            identity_cls.return_value.sign_up = AsyncMock(
                return_value=Account(
                    account_id="uid-1", email="ana@example.com", display_name="Ana"
                )
            )
            response = await client.post(
                f"{API}/auth/sign-up",
                json={"email": "ana@example.com", "password": "secret1", "display_name": "Ana"},
            )

        assert response.status_code == 201
        data = response.json()
        assert data["user"]["is_active"] is False
        assert data["access"]["level"] == "authenticated_pending"
        assert data["access"]["requires_purchase"] is True

        me = await client.get(
            f"{API}/users/me", headers={"Authorization": f"Bearer {data['access_token']}"}
        )
        assert me.json()["account_id"] == "uid-1"

    async def test_identity_error_is_translated(self, client: AsyncClient):
        with patch("clinicflow.api.v1.endpoints.auth.IdentityService") as identity_cls:
            identity_cls.return_value.sign_in = AsyncMock(
                side_effect=translate_provider_error("INVALID_LOGIN_CREDENTIALS")
            )
            response = await client.post(
                f"{API}/auth/sign-in", json={"email": "ana@example.com", "password": "nope"}
            )

        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"
        assert response.json()["category"] == "identity"

    async def test_federated_sign_in(self, client: AsyncClient):
        with patch("clinicflow.api.v1.endpoints.auth.IdentityService") as identity_cls:
            identity_cls.return_value.sign_in_federated = AsyncMock(
                return_value=Account(account_id="g-1", email="bia@gmail.com", display_name="bia")
            )
            response = await client.post(f"{API}/auth/federated", json={"id_token": "token"})

        assert response.status_code == 200
        assert response.json()["user"]["display_name"] == "bia"

    async def test_refresh(self, client: AsyncClient):
        with patch("clinicflow.api.v1.endpoints.auth.IdentityService") as identity_cls:
            identity_cls.return_value.sign_in = AsyncMock(
                return_value=Account(account_id="uid-1", email="ana@example.com")
            )
            login = await client.post(
                f"{API}/auth/sign-in", json={"email": "ana@example.com", "password": "secret1"}
            )

        response = await client.post(
            f"{API}/auth/refresh", json={"refresh_token": login.json()["refresh_token"]}
        )
        rejected = await client.post(
            f"{API}/auth/refresh", json={"refresh_token": login.json()["access_token"]}
        )

        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"
        assert rejected.status_code == 401

    async def test_password_reset(self, client: AsyncClient):
        with patch("clinicflow.api.v1.endpoints.auth.IdentityService") as identity_cls:
            identity_cls.return_value.send_password_reset = AsyncMock()
            response = await client.post(
                f"{API}/auth/password-reset", json={"email": "ana@example.com"}
            )

        assert response.status_code == 202
        identity_cls.return_value.send_password_reset.assert_awaited_once_with("ana@example.com")

    async def test_invalid_token_is_rejected(self, client: AsyncClient):
        response = await client.get(
            f"{API}/me/access", headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401


@pytest.mark.asyncio
class TestClinicFlow:
    async def test_bootstrap_then_clinic_work(
        self, client: AsyncClient, db_session: AsyncSession, contexts
    ):
        owner = make_account("owner", "Ana")
        headers = auth_headers(owner)
        await signed_up(db_session, contexts, owner)

        pending = await client.post(
            f"{API}/patients", json={"name": "Maria", "phone": "1199"}, headers=headers
        )
        assert pending.status_code == 403
        assert pending.json()["category"] == "permission"

        access = await client.post(f"{API}/bootstrap", headers=headers)
        assert access.status_code == 200
        assert access.json()["can_manage_members"] is True
        assert access.json()["is_system_admin"] is True

        again = await client.post(f"{API}/bootstrap", headers=headers)
        assert again.status_code == 409

        patient = await client.post(
            f"{API}/patients",
            json={"name": "Maria Silva", "phone": "(11) 98765-4321", "email": "maria@example.com"},
            headers=headers,
        )
        assert patient.status_code == 201
        patient_id = patient.json()["id"]

        found = await client.get(f"{API}/patients", params={"search": "SILVA"}, headers=headers)
        assert [p["id"] for p in found.json()] == [patient_id]

        record = await client.post(
            f"{API}/patients/{patient_id}/records",
            json={"procedure_type": "Botox", "treated_areas": ["Testa"]},
            headers=headers,
        )
        assert record.status_code == 201
        record_id = record.json()["id"]

        missing_description = await client.patch(
            f"{API}/records/{record_id}", json={"procedure_details": "20U"}, headers=headers
        )
        assert missing_description.status_code == 422

        updated = await client.patch(
            f"{API}/records/{record_id}",
            json={"procedure_details": "20U", "change_description": "Dose"},
            headers=headers,
        )
        assert updated.status_code == 200
        assert [r["changes"] for r in updated.json()["revision_history"]] == ["Dose"]

        records = await client.get(f"{API}/patients/{patient_id}/records", headers=headers)
        assert len(records.json()) == 1

        stats = await client.get(f"{API}/dashboard/stats", headers=headers)
        assert stats.json() == {"total_patients": 1, "procedures_this_month": 1}

    async def test_second_account_cannot_bootstrap(
        self, client: AsyncClient, db_session: AsyncSession, contexts, owner_ctx
    ):
        bob = make_account("bob")
        await signed_up(db_session, contexts, bob)

        response = await client.post(f"{API}/bootstrap", headers=auth_headers(bob))

        assert response.status_code == 409
        assert response.json()["category"] == "conflict"

    async def test_active_account_without_clinic(
        self, client: AsyncClient, db_session: AsyncSession, contexts, owner_ctx
    ):
        bob = make_account("bob")
        await signed_up(db_session, contexts, bob)
        await contexts.users.set_active(db_session, owner_ctx, "bob", True)

        access = await client.get(f"{API}/me/access", headers=auth_headers(bob))
        patients = await client.get(f"{API}/patients", headers=auth_headers(bob))

        assert access.json()["requires_tenant_setup"] is True
        assert patients.status_code == 409
        assert patients.json()["category"] == "tenant"

    async def test_team_management(
        self, client: AsyncClient, db_session: AsyncSession, contexts, owner_ctx
    ):
        owner_headers = auth_headers(make_account("owner", "Ana"))
        bob = make_account("bob")
        await signed_up(db_session, contexts, bob)

        unknown = await client.post(
            f"{API}/tenant/members", json={"email": "ghost@example.com"}, headers=owner_headers
        )
        assert unknown.status_code == 404

        invited = await client.post(
            f"{API}/tenant/members",
            json={"email": "bob@example.com", "role": "readonly"},
            headers=owner_headers,
        )
        assert invited.status_code == 201
        member_id = invited.json()["id"]

        duplicate = await client.post(
            f"{API}/tenant/members", json={"email": "bob@example.com"}, headers=owner_headers
        )
        assert duplicate.status_code == 409

        await client.patch(
            f"{API}/admin/users/bob/active", json={"is_active": True}, headers=owner_headers
        )
        denied = await client.post(
            f"{API}/patients", json={"name": "X", "phone": "1"}, headers=auth_headers(bob)
        )
        assert denied.status_code == 403

        promoted = await client.patch(
            f"{API}/tenant/members/{member_id}", json={"role": "staff"}, headers=owner_headers
        )
        assert promoted.json()["role"] == "staff"
        allowed = await client.post(
            f"{API}/patients", json={"name": "X", "phone": "1"}, headers=auth_headers(bob)
        )
        assert allowed.status_code == 201

        owner_member = owner_ctx.tenant.current_member.id
        protected = await client.delete(
            f"{API}/tenant/members/{owner_member}", headers=owner_headers
        )
        assert protected.status_code == 409

        removed = await client.delete(f"{API}/tenant/members/{member_id}", headers=owner_headers)
        assert removed.status_code == 204
        members = await client.get(f"{API}/tenant/members", headers=owner_headers)
        assert [m["user_id"] for m in members.json()] == ["owner"]

    async def test_settings_owner_only(self, client: AsyncClient, owner_ctx, staff_ctx):
        staff = await client.patch(
            f"{API}/tenant/settings",
            json={"name": "Nova"},
            headers=auth_headers(make_account("staff")),
        )
        owner = await client.patch(
            f"{API}/tenant/settings",
            json={"name": "Nova", "phone": "11 5555"},
            headers=auth_headers(make_account("owner", "Ana")),
        )

        assert staff.status_code == 403
        assert owner.status_code == 200
        assert owner.json()["settings"]["phone"] == "11 5555"

    async def test_admin_routes_require_admin(self, client: AsyncClient, staff_ctx):
        response = await client.get(
            f"{API}/admin/users", headers=auth_headers(make_account("staff"))
        )
        assert response.status_code == 403

    async def test_admin_lists_users(self, client: AsyncClient, owner_ctx, staff_ctx):
        response = await client.get(
            f"{API}/admin/users",
            params={"search": "staff"},
            headers=auth_headers(make_account("owner", "Ana")),
        )
        data = response.json()
        assert data["total"] == 1
        assert data["users"][0]["account_id"] == "staff"

    async def test_unknown_record(self, client: AsyncClient, owner_ctx):
        response = await client.get(
            f"{API}/records/missing", headers=auth_headers(make_account("owner", "Ana"))
        )
        assert response.status_code == 404
        assert response.json()["error"] == "RecordNotFoundException"


class TestLiveSocket:
    def test_malformed_frames_keep_the_socket_open(self):
        app.dependency_overrides[get_cache_manager] = lambda: None
        app.dependency_overrides[get_feed] = ChangeFeed
        try:
            with TestClient(app).websocket_connect(f"{API}/live") as websocket:
                assert websocket.receive_json()["type"] == "access"

                websocket.send_text("{not json")
                first = websocket.receive_json()
                websocket.send_json(["not", "an", "object"])
                second = websocket.receive_json()
                websocket.send_json({"type": "dance"})
                third = websocket.receive_json()
        finally:
            app.dependency_overrides.clear()

        assert first == {"type": "error", "category": "validation", "message": "Invalid message"}
        assert second["category"] == "validation"
        assert third["message"] == "Unknown message type: dance"
