"""Session tokens issued after the identity provider accepts a sign-in.

Both kinds are HS256 JWTs (python-jose) carrying the account claims
``sub``, ``email`` and ``name``; the ``type`` claim keeps a refresh token
from being accepted where an access token is expected and vice versa.
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from jose import JWTError, jwt

from clinicflow.config import settings

TokenKind = Literal["access", "refresh"]


def default_lifetime(kind: TokenKind) -> timedelta:
    if kind == "access":
        return timedelta(minutes=settings.access_token_expire_minutes)
    return timedelta(days=settings.refresh_token_expire_days)


def issue_token(
    claims: dict[str, Any], kind: TokenKind, lifetime: timedelta | None = None
) -> str:
    """Sign ``claims`` as a token of the given kind."""
    issued_at = datetime.now(UTC)
    payload = {
        **claims,
        "type": kind,
        "iat": issued_at,
        "exp": issued_at + (lifetime or default_lifetime(kind)),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def read_token(token: str, kind: TokenKind) -> dict[str, Any] | None:
    """Claims of a valid, unexpired token of the given kind; None otherwise."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    return payload if payload.get("type") == kind else None
