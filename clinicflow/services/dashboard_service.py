"""Dashboard statistics service."""

from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import CallerContext, require_tenant
from clinicflow.models.medical_records import medical_records
from clinicflow.models.patients import patients
from clinicflow.schemas.dashboard import DashboardStats


class DashboardService:
    """Tenant-wide counters."""

    async def stats(
        self, db: AsyncSession, ctx: CallerContext, now: datetime | None = None
    ) -> DashboardStats:
        """Patient total and procedures recorded since the start of the month."""
        tenant_id = require_tenant(ctx)
        now = now or datetime.now(UTC)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        total_patients = (
            await db.execute(
                select(func.count()).select_from(patients).where(patients.c.tenant_id == tenant_id)
            )
        ).scalar_one()

        procedures_this_month = (
            await db.execute(
                select(func.count())
                .select_from(medical_records)
                .where(
                    medical_records.c.tenant_id == tenant_id,
                    medical_records.c.created_at >= month_start,
                )
            )
        ).scalar_one()

        return DashboardStats(
            total_patients=total_patients, procedures_this_month=procedures_this_month
        )
