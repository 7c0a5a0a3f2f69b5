"""Dashboard endpoints."""

from fastapi import APIRouter

from clinicflow.dependencies import ActiveCaller, DatabaseSession
from clinicflow.schemas.dashboard import DashboardStats
from clinicflow.services.dashboard_service import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=DashboardStats, summary="Clinic counters")
async def get_stats(ctx: ActiveCaller, db: DatabaseSession) -> DashboardStats:
    """Total patients and procedures recorded this month."""
    return await DashboardService().stats(db, ctx)
