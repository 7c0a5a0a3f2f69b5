"""Firebase Admin SDK: the server side of the identity provider.

Federated sign-in sends the client's Firebase ID token here for
verification; sign-out revokes the provider refresh tokens.
"""

import json
from pathlib import Path

import firebase_admin
from firebase_admin import auth, credentials, exceptions
from structlog import get_logger

logger = get_logger(__name__)

_firebase_app: firebase_admin.App | None = None

# Tolerated drift between our clock and the token issuer's
CLOCK_SKEW_SECONDS = 10


def _load_credentials(
    credentials_path: str | None, config_json: str | None
) -> credentials.Base | None:
    if config_json:
        return credentials.Certificate(json.loads(config_json))
    if credentials_path and Path(credentials_path).is_file():
        return credentials.Certificate(credentials_path)
    return None


def initialize_firebase(
    credentials_path: str | None = None, config_json: str | None = None
) -> firebase_admin.App:
    """
    Start the Admin SDK once per process.

    A service account given as raw JSON wins over one given as a file;
    with neither, Application Default Credentials are used.
    """
    global _firebase_app

    if _firebase_app is None:
        cred = _load_credentials(credentials_path, config_json)
        _firebase_app = firebase_admin.initialize_app(cred)
        logger.info(
            "firebase_app_ready",
            credentials="service_account" if cred else "application_default",
        )

    return _firebase_app


def firebase_ready() -> bool:
    return _firebase_app is not None


async def verify_firebase_token(id_token: str) -> dict:
    """
    Decode a client ID token.

    Raises:
        ValueError: ``USER_DISABLED`` for a disabled account, otherwise a
            message describing why the token was refused
    """
    try:
        claims = auth.verify_id_token(id_token, clock_skew_seconds=CLOCK_SKEW_SECONDS)
    except auth.UserDisabledError as e:
        raise ValueError("USER_DISABLED") from e
    except auth.InvalidIdTokenError as e:
        logger.info("federated_token_refused", reason=str(e))
        raise ValueError(f"Invalid Firebase ID token: {e}") from e
    except (ValueError, exceptions.FirebaseError) as e:
        logger.warning("federated_token_check_failed", error=str(e))
        raise ValueError(f"Token verification failed: {e}") from e

    return claims


def revoke_refresh_tokens(uid: str) -> None:
    auth.revoke_refresh_tokens(uid)
    logger.info("provider_tokens_revoked", uid=uid)
