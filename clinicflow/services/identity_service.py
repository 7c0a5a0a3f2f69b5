"""Identity provider adapter backed by Firebase Authentication.

Email/password flows go through the Identity Toolkit REST API; federated
sign-in verifies an ID token the client obtained from Google with the
Admin SDK. Every provider failure is translated into an
``IdentityException`` carrying a provider-independent code.
"""

from typing import Any

import httpx
import structlog

from clinicflow.config import settings
from clinicflow.core.access import Account
from clinicflow.core.exceptions import IdentityException
from clinicflow.core.firebase import revoke_refresh_tokens, verify_firebase_token

logger = structlog.get_logger(__name__)

# code -> (message, HTTP status)
IDENTITY_ERRORS: dict[str, tuple[str, int]] = {
    "already_in_use": ("Este email já está em uso.", 409),
    "invalid_email": ("Email inválido.", 422),
    "weak_secret": ("A senha é muito fraca. Use pelo menos 6 caracteres.", 422),
    "account_disabled": ("Esta conta foi desativada.", 403),
    "invalid_credentials": ("Email ou senha incorretos.", 401),
    "rate_limited": ("Muitas tentativas. Tente novamente mais tarde.", 429),
    "user_cancelled": ("Login cancelado.", 400),
    "operation_not_allowed": ("Operação não permitida.", 403),
    "unavailable": ("Serviço de autenticação indisponível. Tente novamente.", 503),
    "unknown": ("Ocorreu um erro. Tente novamente.", 400),
}

# Identity Toolkit REST codes and client SDK codes
PROVIDER_CODES: dict[str, str] = {
    "EMAIL_EXISTS": "already_in_use",
    "auth/email-already-in-use": "already_in_use",
    "INVALID_EMAIL": "invalid_email",
    "auth/invalid-email": "invalid_email",
    "WEAK_PASSWORD": "weak_secret",
    "auth/weak-password": "weak_secret",
    "USER_DISABLED": "account_disabled",
    "auth/user-disabled": "account_disabled",
    "EMAIL_NOT_FOUND": "invalid_credentials",
    "INVALID_PASSWORD": "invalid_credentials",
    "INVALID_LOGIN_CREDENTIALS": "invalid_credentials",
    "INVALID_ID_TOKEN": "invalid_credentials",
    "auth/user-not-found": "invalid_credentials",
    "auth/wrong-password": "invalid_credentials",
    "auth/invalid-credential": "invalid_credentials",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "rate_limited",
    "auth/too-many-requests": "rate_limited",
    "auth/popup-closed-by-user": "user_cancelled",
    "auth/cancelled-popup-request": "user_cancelled",
    "OPERATION_NOT_ALLOWED": "operation_not_allowed",
    "auth/operation-not-allowed": "operation_not_allowed",
}


def translate_provider_error(provider_code: str | None) -> IdentityException:
    """Map a provider error code to an IdentityException.

    REST messages may carry a detail suffix (``WEAK_PASSWORD : Password
    should be at least 6 characters``); only the leading code is used.
    """
    code = "unknown"
    if provider_code:
        key = provider_code.split(" : ", 1)[0].strip()
        code = PROVIDER_CODES.get(key, "unknown")

    message, status_code = IDENTITY_ERRORS[code]
    return IdentityException(code, message, status_code=status_code)


def email_local_part(email: str) -> str:
    return email.split("@", 1)[0] if email else ""


class IdentityService:
    """Firebase Authentication adapter."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        """Initialize with an optional HTTP client (tests pass a mocked one)."""
        self._client = client

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{settings.identity_toolkit_url}/accounts:{endpoint}"
        params = {"key": settings.firebase_web_api_key}

        try:
            if self._client is not None:
                response = await self._client.post(url, params=params, json=payload)
            else:
                async with httpx.AsyncClient(timeout=settings.identity_timeout_seconds) as client:
                    response = await client.post(url, params=params, json=payload)
        except httpx.HTTPError as e:
            logger.error("identity_provider_unreachable", endpoint=endpoint, error=str(e))
            message, status_code = IDENTITY_ERRORS["unavailable"]
            raise IdentityException("unavailable", message, status_code=status_code) from e

        if response.status_code != 200:
            try:
                provider_code = response.json().get("error", {}).get("message")
            except ValueError:
                # Non-JSON error page
                provider_code = None
            logger.warning(
                "identity_provider_error",
                endpoint=endpoint,
                status_code=response.status_code,
                provider_code=provider_code,
            )
            raise translate_provider_error(provider_code)

        return response.json()

    async def sign_up(self, email: str, password: str, display_name: str) -> Account:
        """Create an email/password account and set its display name."""
        data = await self._post(
            "signUp", {"email": email, "password": password, "returnSecureToken": True}
        )

        await self._post(
            "update",
            {"idToken": data["idToken"], "displayName": display_name, "returnSecureToken": False},
        )

        logger.info("identity_account_created", account_id=data["localId"])
        return Account(
            account_id=data["localId"],
            email=data.get("email", email),
            display_name=display_name,
        )

    async def sign_in(self, email: str, password: str) -> Account:
        """Email/password sign-in."""
        data = await self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return Account(
            account_id=data["localId"],
            email=data.get("email", email),
            display_name=data.get("displayName") or None,
        )

    async def sign_in_federated(self, id_token: str) -> Account:
        """Verify a Firebase ID token obtained from a federated provider."""
        try:
            decoded = await verify_firebase_token(id_token)
        except ValueError as e:
            raise translate_provider_error(
                "USER_DISABLED" if str(e) == "USER_DISABLED" else "INVALID_ID_TOKEN"
            ) from e

        email = decoded.get("email") or ""
        return Account(
            account_id=decoded["uid"],
            email=email,
            display_name=decoded.get("name")
            or email_local_part(email)
            or settings.default_display_name,
        )

    async def sign_out(self, account_id: str) -> None:
        """Revoke provider refresh tokens; failures are logged, not raised."""
        try:
            revoke_refresh_tokens(account_id)
        except Exception as e:
            logger.warning("identity_sign_out_failed", account_id=account_id, error=str(e))

    async def send_password_reset(self, email: str) -> None:
        """Ask the provider to email a password reset link."""
        await self._post("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
        logger.info("password_reset_requested")
