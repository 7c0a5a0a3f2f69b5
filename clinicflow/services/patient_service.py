"""Patient repository service."""

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import CallerContext, require_can_edit, require_tenant
from clinicflow.core.change_feed import ChangeFeed, get_change_feed, patients_topic
from clinicflow.core.exceptions import NotFoundException
from clinicflow.core.observable import LiveQuery
from clinicflow.models.patients import patients
from clinicflow.schemas.patients import Patient, PatientCreate, PatientUpdate

logger = structlog.get_logger(__name__)


class PatientService:
    """Tenant-scoped patient CRUD."""

    def __init__(self, feed: ChangeFeed | None = None):
        """Initialize service with optional change feed."""
        self.feed = feed or get_change_feed()

    async def list_patients(self, db: AsyncSession, tenant_id: str) -> list[Patient]:
        """All patients of a clinic, newest first."""
        result = await db.execute(
            select(patients)
            .where(patients.c.tenant_id == tenant_id)
            .order_by(patients.c.created_at.desc())
        )
        return [Patient.model_validate(dict(row)) for row in result.mappings().all()]

    def observe(
        self, session_factory: Callable[[], AsyncSession], tenant_id: str
    ) -> LiveQuery[list[Patient]]:
        """Live view of the clinic's patient list."""

        async def fetch() -> list[Patient]:
            async with session_factory() as session:
                return await self.list_patients(session, tenant_id)

        return LiveQuery(self.feed, [patients_topic(tenant_id)], fetch, name="patients")

    async def get_patient(self, db: AsyncSession, ctx: CallerContext, patient_id: str) -> Patient:
        """Fetch one patient of the caller's clinic."""
        tenant_id = require_tenant(ctx)
        return await self._get(db, tenant_id, patient_id)

    async def _get(self, db: AsyncSession, tenant_id: str, patient_id: str) -> Patient:
        result = await db.execute(
            select(patients).where(
                patients.c.id == patient_id,
                patients.c.tenant_id == tenant_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Patient not found")
        return Patient.model_validate(dict(row))

    async def create_patient(
        self, db: AsyncSession, ctx: CallerContext, patient_data: PatientCreate
    ) -> Patient:
        """Register a patient in the caller's clinic."""
        tenant_id = require_can_edit(ctx)
        now = datetime.now(UTC)

        values = patient_data.model_dump()
        values["email"] = str(values["email"]) if values.get("email") else None

        result = await db.execute(
            patients.insert()
            .values(
                id=str(uuid4()),
                tenant_id=tenant_id,
                created_at=now,
                updated_at=now,
                created_by=ctx.account_id,
                **values,
            )
            .returning(patients)
        )
        row = result.mappings().one()
        await db.commit()

        self.feed.publish(patients_topic(tenant_id))
        logger.info("patient_created", tenant_id=tenant_id, patient_id=row["id"])

        return Patient.model_validate(dict(row))

    async def update_patient(
        self,
        db: AsyncSession,
        ctx: CallerContext,
        patient_id: str,
        patient_data: PatientUpdate,
    ) -> Patient:
        """Merge the sent fields into a patient and stamp ``updated_at``."""
        tenant_id = require_can_edit(ctx)

        update_values = {
            key: value
            for key, value in patient_data.model_dump(exclude_unset=True).items()
            if value is not None or key not in ("name", "phone", "tags")
        }
        if update_values.get("email") is not None:
            update_values["email"] = str(update_values["email"])
        update_values["updated_at"] = datetime.now(UTC)

        result = await db.execute(
            update(patients)
            .where(patients.c.id == patient_id, patients.c.tenant_id == tenant_id)
            .values(**update_values)
            .returning(patients)
        )
        row = result.mappings().first()
        if not row:
            await db.rollback()
            raise NotFoundException("Patient not found")

        await db.commit()
        self.feed.publish(patients_topic(tenant_id))

        return Patient.model_validate(dict(row))

    async def delete_patient(self, db: AsyncSession, ctx: CallerContext, patient_id: str) -> None:
        """Delete a patient; its medical records are kept."""
        tenant_id = require_can_edit(ctx)

        result = await db.execute(
            delete(patients)
            .where(patients.c.id == patient_id, patients.c.tenant_id == tenant_id)
            .returning(patients.c.id)
        )
        if result.first() is None:
            await db.rollback()
            raise NotFoundException("Patient not found")

        await db.commit()
        self.feed.publish(patients_topic(tenant_id))
        logger.info("patient_deleted", tenant_id=tenant_id, patient_id=patient_id)

    @staticmethod
    def search_patients(patient_list: list[Patient], term: str | None) -> list[Patient]:
        """Filter an already loaded list by name, email or raw phone substring.

        A blank term returns the list unchanged. Name and email match
        case-insensitively; phone is compared as stored, without normalization.
        """
        if term is None or not term.strip():
            return list(patient_list)

        needle = term.lower()
        return [
            patient
            for patient in patient_list
            if needle in patient.name.lower()
            or needle in (patient.email or "").lower()
            or term in patient.phone
        ]
