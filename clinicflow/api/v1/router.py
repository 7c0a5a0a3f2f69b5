"""API v1 router configuration."""

from fastapi import APIRouter

from clinicflow.api.v1.endpoints import (
    admin,
    auth,
    bootstrap,
    dashboard,
    health,
    live,
    patients,
    records,
    tenants,
    users,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(users.router, tags=["Users"])
api_router.include_router(bootstrap.router, tags=["Bootstrap"])
api_router.include_router(admin.router, tags=["Admin"])
api_router.include_router(tenants.router)
api_router.include_router(patients.router)
api_router.include_router(records.router)
api_router.include_router(dashboard.router)
api_router.include_router(live.router, tags=["Live"])
