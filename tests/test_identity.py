"""Tests for the identity provider adapter and session tokens."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import Account
from clinicflow.core.exceptions import IdentityException, UnauthorizedException
from clinicflow.services.auth_service import AuthService, validate_access_token
from clinicflow.services.identity_service import (
    IdentityService,
    email_local_part,
    translate_provider_error,
)
from clinicflow.services.user_service import UserService


def provider(handler) -> IdentityService:
    """Adapter talking to an in-process fake of the REST API."""
    return IdentityService(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def rest_error(message: str, status_code: int = 400) -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"code": status_code, "message": message}})


class TestErrorTranslation:
    @pytest.mark.parametrize(
        ("provider_code", "code", "status_code"),
        [
            ("EMAIL_EXISTS", "already_in_use", 409),
            ("auth/email-already-in-use", "already_in_use", 409),
            ("INVALID_EMAIL", "invalid_email", 422),
            ("WEAK_PASSWORD : Password should be at least 6 characters", "weak_secret", 422),
            ("USER_DISABLED", "account_disabled", 403),
            ("INVALID_LOGIN_CREDENTIALS", "invalid_credentials", 401),
            ("auth/wrong-password", "invalid_credentials", 401),
            ("TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled", "rate_limited", 429),
            ("auth/popup-closed-by-user", "user_cancelled", 400),
            ("SOMETHING_NEW", "unknown", 400),
            (None, "unknown", 400),
        ],
    )
    def test_codes(self, provider_code, code, status_code):
        error = translate_provider_error(provider_code)
        assert error.code == code
        assert error.status_code == status_code
        assert error.message

    def test_messages_are_localized(self):
        assert translate_provider_error("EMAIL_EXISTS").message == "Este email já está em uso."

    def test_email_local_part(self):
        assert email_local_part("ana.souza@example.com") == "ana.souza"
        assert email_local_part("") == ""


@pytest.mark.asyncio
class TestIdentityService:
    async def test_sign_up_sets_display_name(self):
        calls: list[tuple[str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            calls.append((request.url.path, body))
            if request.url.path.endswith("accounts:signUp"):
                return httpx.Response(
                    200, json={"localId": "uid-1", "email": body["email"], "idToken": "tok"}
                )
            return httpx.Response(200, json={"localId": "uid-1", "displayName": "Ana"})

        account = await provider(handler).sign_up("ana@example.com", "secret1", "Ana")

        assert account == Account(account_id="uid-1", email="ana@example.com", display_name="Ana")
        assert [path.rsplit(":", 1)[-1] for path, _ in calls] == ["signUp", "update"]
        assert calls[1][1]["displayName"] == "Ana"
        assert calls[1][1]["idToken"] == "tok"

    async def test_sign_up_rejected(self):
        service = provider(lambda request: rest_error("EMAIL_EXISTS"))

        with pytest.raises(IdentityException) as exc_info:
            await service.sign_up("ana@example.com", "secret1", "Ana")

        assert exc_info.value.code == "already_in_use"

    async def test_sign_in(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("accounts:signInWithPassword")
            return httpx.Response(
                200, json={"localId": "uid-1", "email": "ana@example.com", "displayName": ""}
            )

        account = await provider(handler).sign_in("ana@example.com", "secret1")

        assert account.account_id == "uid-1"
        assert account.display_name is None

    async def test_wrong_password(self):
        service = provider(lambda request: rest_error("INVALID_LOGIN_CREDENTIALS"))

        with pytest.raises(IdentityException) as exc_info:
            await service.sign_in("ana@example.com", "wrong")

        assert exc_info.value.code == "invalid_credentials"
        assert exc_info.value.status_code == 401

    async def test_provider_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(IdentityException) as exc_info:
            await provider(handler).sign_in("ana@example.com", "secret1")

        assert exc_info.value.code == "unavailable"
        assert exc_info.value.status_code == 503

    async def test_non_json_error_page(self):
        service = provider(lambda request: httpx.Response(502, text="<html>Bad gateway</html>"))

        with pytest.raises(IdentityException) as exc_info:
            await service.send_password_reset("ana@example.com")

        assert exc_info.value.code == "unknown"

    async def test_password_reset_request(self):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"email": "ana@example.com"})

        await provider(handler).send_password_reset("ana@example.com")

        assert seen == [{"requestType": "PASSWORD_RESET", "email": "ana@example.com"}]

    async def test_federated_display_name_fallbacks(self):
        service = IdentityService()
        verify = AsyncMock(
            side_effect=[
                {"uid": "g-1", "email": "ana@gmail.com", "name": "Ana Souza"},
                {"uid": "g-2", "email": "bia@gmail.com"},
                {"uid": "g-3"},
            ]
        )

        with patch("clinicflow.services.identity_service.verify_firebase_token", verify):
            named = await service.sign_in_federated("t1")
            from_email = await service.sign_in_federated("t2")
            anonymous = await service.sign_in_federated("t3")

        assert named.display_name == "Ana Souza"
        assert from_email.display_name == "bia"
        assert anonymous.display_name == "Usuário"

    async def test_federated_token_rejected(self):
        service = IdentityService()

        with patch(
            "clinicflow.services.identity_service.verify_firebase_token",
            AsyncMock(side_effect=ValueError("Invalid Firebase ID token: expired")),
        ):
            with pytest.raises(IdentityException) as exc_info:
                await service.sign_in_federated("expired")

        assert exc_info.value.code == "invalid_credentials"

    async def test_federated_account_disabled(self):
        service = IdentityService()

        with patch(
            "clinicflow.services.identity_service.verify_firebase_token",
            AsyncMock(side_effect=ValueError("USER_DISABLED")),
        ):
            with pytest.raises(IdentityException) as exc_info:
                await service.sign_in_federated("token")

        assert exc_info.value.code == "account_disabled"

    async def test_sign_out_failure_is_not_raised(self):
        with patch(
            "clinicflow.services.identity_service.revoke_refresh_tokens",
            side_effect=RuntimeError("firebase not initialized"),
        ):
            await IdentityService().sign_out("uid-1")


@pytest.mark.asyncio
class TestAuthService:
    async def test_sign_up_creates_inactive_directory_entry(
        self, db_session: AsyncSession, feed
    ):
        identity = MagicMock(spec=IdentityService)
        identity.sign_up = AsyncMock(
            return_value=Account(account_id="uid-1", email="ana@example.com", display_name="Ana")
        )
        service = AuthService(None, identity, UserService(None, feed))

        account, user, token = await service.sign_up(db_session, "ana@example.com", "x", "Ana")

        assert user.is_active is False
        assert user.tenant_id is None
        assert validate_access_token(token.access_token) == account

    async def test_sign_in_keeps_directory_display_name(self, db_session: AsyncSession, feed):
        users = UserService(None, feed)
        await users.create_if_absent(db_session, "uid-1", "Ana Souza", "ana@example.com")
        identity = MagicMock(spec=IdentityService)
        identity.sign_in = AsyncMock(
            return_value=Account(account_id="uid-1", email="ana@example.com", display_name=None)
        )

        account, user, _ = await AuthService(None, identity, users).sign_in(
            db_session, "ana@example.com", "x"
        )

        assert account.display_name == "Ana Souza"
        assert user.display_name == "Ana Souza"

    async def test_refresh_and_revoke(self):
        cache = MagicMock()
        cache.is_revoked.return_value = False
        service = AuthService(cache, MagicMock(spec=IdentityService))
        tokens = service.create_tokens(Account(account_id="uid-1", email="a@example.com"))

        refreshed = service.refresh_access_token(tokens.refresh_token)
        assert validate_access_token(refreshed.access_token).account_id == "uid-1"

        service.revoke_token(tokens.refresh_token)
        cache.revoke.assert_called_once()
        cache.is_revoked.return_value = True
        with pytest.raises(UnauthorizedException):
            service.refresh_access_token(tokens.refresh_token)

    async def test_access_token_is_not_a_refresh_token(self):
        service = AuthService(None, MagicMock(spec=IdentityService))
        tokens = service.create_tokens(Account(account_id="uid-1"))

        with pytest.raises(UnauthorizedException):
            service.refresh_access_token(tokens.access_token)
        assert validate_access_token(tokens.refresh_token) is None
        assert validate_access_token("garbage") is None

    async def test_sign_out_blacklists_refresh_token(self):
        cache = MagicMock()
        identity = MagicMock(spec=IdentityService)
        identity.sign_out = AsyncMock()

        await AuthService(cache, identity).sign_out("uid-1", "refresh-token")

        cache.revoke.assert_called_once_with("refresh-token", ttl=30 * 86400)
        identity.sign_out.assert_awaited_once_with("uid-1")
