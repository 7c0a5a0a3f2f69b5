"""Liveness and readiness endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from clinicflow.config import settings
from clinicflow.core.firebase import firebase_ready
from clinicflow.core.redis_client import check_redis_connection
from clinicflow.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness payload."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Readiness payload with one entry per backing service."""

    database: str
    cache: str
    identity: str


def _state(ok: bool) -> str:
    return "healthy" if ok else "unhealthy"


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
)
async def health_check() -> HealthResponse:
    """The process is up and serving requests."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Probe the store, the cache and the identity provider SDK.

    The cache is optional: when it is down the service is ``degraded``
    but still answers every request from the store.
    """
    db_ok = await check_database_connection()
    cache_ok = await check_redis_connection()
    identity_ok = firebase_ready()

    if not db_ok:
        overall = "unhealthy"
    elif cache_ok and identity_ok:
        overall = "healthy"
    else:
        overall = "degraded"

    return DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database=_state(db_ok),
        cache=_state(cache_ok),
        identity=_state(identity_ok),
    )


@router.get("/ping", status_code=status.HTTP_200_OK, summary="Simple ping")
async def ping() -> dict[str, str]:
    return {"message": "pong"}
