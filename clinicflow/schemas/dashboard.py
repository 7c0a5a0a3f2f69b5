"""Dashboard schemas."""

from pydantic import BaseModel


class DashboardStats(BaseModel):
    """Tenant-wide counters shown on the dashboard."""

    total_patients: int
    procedures_this_month: int
