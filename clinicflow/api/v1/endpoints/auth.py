"""Authentication endpoints."""

from fastapi import APIRouter, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import Account
from clinicflow.dependencies import CacheManagerDep, Contexts, CurrentAccount, DatabaseSession
from clinicflow.schemas.access import AccessStateResponse
from clinicflow.schemas.auth import (
    FederatedSignInRequest,
    LoginResponse,
    PasswordResetRequest,
    SignInRequest,
    SignUpRequest,
    Token,
    TokenRefresh,
)
from clinicflow.schemas.users import UserRecord
from clinicflow.services.auth_service import AuthService
from clinicflow.services.context_service import ContextService
from clinicflow.services.identity_service import IdentityService

router = APIRouter()


async def _login_response(
    db: AsyncSession,
    contexts: ContextService,
    account: Account,
    user: UserRecord,
    tokens: Token,
) -> LoginResponse:
    ctx = await contexts.load_caller_context(db, account, fresh=True)
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        user=user,
        access=AccessStateResponse.from_context(ctx),
    )


@router.post(
    "/sign-up",
    response_model=LoginResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Email and password sign-up",
)
async def sign_up(
    request: SignUpRequest,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    contexts: Contexts,
) -> LoginResponse:
    """
    Create a provider account and its (inactive) directory entry.

    New accounts wait for activation: the returned access level is
    ``authenticated_pending``.
    """
    auth_service = AuthService(cache_manager, IdentityService(), contexts.users)
    account, user, tokens = await auth_service.sign_up(
        db, request.email, request.password, request.display_name
    )
    return await _login_response(db, contexts, account, user, tokens)


@router.post(
    "/sign-in",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    summary="Email and password sign-in",
)
async def sign_in(
    request: SignInRequest,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    contexts: Contexts,
) -> LoginResponse:
    """Sign in with email and password and return session tokens."""
    auth_service = AuthService(cache_manager, IdentityService(), contexts.users)
    account, user, tokens = await auth_service.sign_in(db, request.email, request.password)
    return await _login_response(db, contexts, account, user, tokens)


@router.post(
    "/federated",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    summary="Firebase ID token sign-in",
)
async def sign_in_federated(
    request: FederatedSignInRequest,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    contexts: Contexts,
) -> LoginResponse:
    """
    Verify a Firebase ID token obtained with Google sign-in.

    The directory entry is created on first sign-in, using the token's
    name, then the email local part, as display name.
    """
    auth_service = AuthService(cache_manager, IdentityService(), contexts.users)
    account, user, tokens = await auth_service.sign_in_federated(db, request.id_token)
    return await _login_response(db, contexts, account, user, tokens)


@router.post(
    "/refresh",
    response_model=Token,
    status_code=status.HTTP_200_OK,
    summary="Refresh access token",
)
async def refresh_token(request: TokenRefresh, cache_manager: CacheManagerDep) -> Token:
    """Exchange a valid, non-revoked refresh token for a new token pair."""
    auth_service = AuthService(cache_manager)
    return auth_service.refresh_access_token(request.refresh_token)


@router.post(
    "/sign-out",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Sign out and revoke tokens",
)
async def sign_out(
    request: TokenRefresh,
    account: CurrentAccount,
    cache_manager: CacheManagerDep,
) -> None:
    """Revoke the refresh token and the provider's refresh tokens."""
    auth_service = AuthService(cache_manager)
    await auth_service.sign_out(account.account_id, request.refresh_token)


@router.post(
    "/password-reset",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Send a password reset email",
)
async def password_reset(request: PasswordResetRequest) -> dict[str, str]:
    """Ask the identity provider to email a reset link."""
    await IdentityService().send_password_reset(request.email)
    return {"message": "Password reset email sent"}
