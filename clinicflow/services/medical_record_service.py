"""Medical record repository service."""

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import settings
from clinicflow.core.access import CallerContext, require_can_edit, require_tenant
from clinicflow.core.change_feed import ChangeFeed, get_change_feed, records_topic
from clinicflow.core.exceptions import NotFoundException, RecordNotFoundException
from clinicflow.core.observable import LiveQuery
from clinicflow.models.medical_records import medical_records
from clinicflow.models.patients import patients
from clinicflow.schemas.medical_records import (
    MedicalRecord,
    MedicalRecordCreate,
    MedicalRecordUpdate,
    RecordRevision,
)

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class MedicalRecordService:
    """Tenant and patient scoped procedure records with revision history."""

    def __init__(self, feed: ChangeFeed | None = None):
        """Initialize service with optional change feed."""
        self.feed = feed or get_change_feed()

    async def list_records(
        self, db: AsyncSession, tenant_id: str, patient_id: str
    ) -> list[MedicalRecord]:
        """Records of one patient, newest first."""
        result = await db.execute(
            select(medical_records)
            .where(
                medical_records.c.tenant_id == tenant_id,
                medical_records.c.patient_id == patient_id,
            )
            .order_by(medical_records.c.created_at.desc())
        )
        return [MedicalRecord.model_validate(dict(row)) for row in result.mappings().all()]

    def observe(
        self, session_factory: Callable[[], AsyncSession], tenant_id: str, patient_id: str
    ) -> LiveQuery[list[MedicalRecord]]:
        """Live view of one patient's records."""

        async def fetch() -> list[MedicalRecord]:
            async with session_factory() as session:
                return await self.list_records(session, tenant_id, patient_id)

        return LiveQuery(
            self.feed, [records_topic(tenant_id, patient_id)], fetch, name="medical_records"
        )

    async def get_record(
        self, db: AsyncSession, ctx: CallerContext, record_id: str
    ) -> MedicalRecord:
        """Fetch one record of the caller's clinic."""
        tenant_id = require_tenant(ctx)
        return await self._get(db, tenant_id, record_id)

    async def _get(self, db: AsyncSession, tenant_id: str, record_id: str) -> MedicalRecord:
        result = await db.execute(
            select(medical_records).where(
                medical_records.c.id == record_id,
                medical_records.c.tenant_id == tenant_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise RecordNotFoundException()
        return MedicalRecord.model_validate(dict(row))

    async def create_record(
        self,
        db: AsyncSession,
        ctx: CallerContext,
        patient_id: str,
        record_data: MedicalRecordCreate,
    ) -> MedicalRecord:
        """Record a procedure for a patient of the caller's clinic."""
        tenant_id = require_can_edit(ctx)

        patient = await db.execute(
            select(patients.c.id).where(
                patients.c.id == patient_id,
                patients.c.tenant_id == tenant_id,
            )
        )
        if patient.first() is None:
            raise NotFoundException("Patient not found")

        now = datetime.now(UTC)
        result = await db.execute(
            medical_records.insert()
            .values(
                id=str(uuid4()),
                tenant_id=tenant_id,
                patient_id=patient_id,
                created_at=now,
                updated_at=now,
                created_by=ctx.account_id,
                updated_by=None,
                attachments=[],
                revision_history=[],
                **record_data.model_dump(mode="json"),
            )
            .returning(medical_records)
        )
        row = result.mappings().one()
        await db.commit()

        self.feed.publish(records_topic(tenant_id, patient_id))
        logger.info(
            "medical_record_created",
            tenant_id=tenant_id,
            patient_id=patient_id,
            record_id=row["id"],
        )

        return MedicalRecord.model_validate(dict(row))

    async def update_record(
        self,
        db: AsyncSession,
        ctx: CallerContext,
        record_id: str,
        record_data: MedicalRecordUpdate,
    ) -> MedicalRecord:
        """Apply field changes and append exactly one revision.

        The history is read, extended and written back in a single UPDATE.
        Two concurrent updates of the same record can still lose one of the
        appended revisions (last write wins).
        """
        tenant_id = require_can_edit(ctx)
        current = await self._get(db, tenant_id, record_id)

        now = datetime.now(UTC)
        if current.revision_history:
            # Keep the history ordered even if clocks step backwards
            now = max(now, _as_utc(current.revision_history[-1].timestamp))

        revision = RecordRevision(
            id=str(uuid4()),
            timestamp=now,
            user_id=ctx.account_id,
            user_name=ctx.auth.display_name or settings.default_display_name,
            changes=record_data.change_description,
        )
        history = [entry.model_dump(mode="json") for entry in current.revision_history]
        history.append(revision.model_dump(mode="json"))

        update_values = {
            key: value
            for key, value in record_data.model_dump(
                mode="json", exclude_unset=True, exclude={"change_description"}
            ).items()
            # Only the notes column is nullable
            if value is not None or key == "additional_notes"
        }
        update_values.update(updated_at=now, updated_by=ctx.account_id, revision_history=history)

        result = await db.execute(
            update(medical_records)
            .where(medical_records.c.id == record_id, medical_records.c.tenant_id == tenant_id)
            .values(**update_values)
            .returning(medical_records)
        )
        row = result.mappings().first()
        if not row:
            await db.rollback()
            raise RecordNotFoundException()

        await db.commit()
        self.feed.publish(records_topic(tenant_id, current.patient_id))
        logger.info(
            "medical_record_updated",
            tenant_id=tenant_id,
            record_id=record_id,
            revisions=len(history),
        )

        return MedicalRecord.model_validate(dict(row))
