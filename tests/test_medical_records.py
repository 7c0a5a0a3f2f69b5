"""Tests for the medical record repository and its revision history."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.exceptions import (
    NotFoundException,
    PermissionDeniedException,
    RecordNotFoundException,
)
from clinicflow.schemas.medical_records import (
    MedicalRecordCreate,
    MedicalRecordUpdate,
    ProductUsed,
)
from clinicflow.schemas.patients import PatientCreate
from clinicflow.services.medical_record_service import MedicalRecordService
from clinicflow.services.patient_service import PatientService


def record_in(**overrides) -> MedicalRecordCreate:
    data = {
        "procedure_type": "Botox",
        "chief_complaint": "Rugas na testa",
        "treated_areas": ["Testa", "Glabela", "Testa"],
        "products_used": [ProductUsed(name="Toxina", batch="L123", dosage="20U")],
    }
    data.update(overrides)
    return MedicalRecordCreate(**data)


@pytest.fixture
async def patient(db_session: AsyncSession, feed, owner_ctx):
    return await PatientService(feed).create_patient(
        db_session, owner_ctx, PatientCreate(name="Maria Silva", phone="(11) 98765-4321")
    )


@pytest.mark.asyncio
class TestMedicalRecords:
    async def test_create_starts_without_history(
        self, db_session: AsyncSession, feed, owner_ctx, patient
    ):
        record = await MedicalRecordService(feed).create_record(
            db_session, owner_ctx, patient.id, record_in()
        )

        assert record.patient_id == patient.id
        assert record.tenant_id == owner_ctx.tenant_id
        assert record.treated_areas == ["Testa", "Glabela"]
        assert record.products_used[0].batch == "L123"
        assert record.revision_history == []
        assert record.attachments == []
        assert record.updated_by is None

    async def test_unknown_patient(self, db_session: AsyncSession, feed, owner_ctx):
        with pytest.raises(NotFoundException):
            await MedicalRecordService(feed).create_record(
                db_session, owner_ctx, "missing", record_in()
            )

    async def test_each_update_appends_one_revision(
        self, db_session: AsyncSession, feed, owner_ctx, staff_ctx, patient
    ):
        service = MedicalRecordService(feed)
        record = await service.create_record(db_session, owner_ctx, patient.id, record_in())

        first = await service.update_record(
            db_session,
            owner_ctx,
            record.id,
            MedicalRecordUpdate(procedure_details="20U", change_description="Dose registrada"),
        )
        second = await service.update_record(
            db_session,
            staff_ctx,
            record.id,
            MedicalRecordUpdate(additional_notes="Retorno em 15 dias", change_description="Notas"),
        )
        third = await service.update_record(
            db_session,
            owner_ctx,
            record.id,
            MedicalRecordUpdate(treated_areas=["Testa"], change_description="Áreas"),
        )

        history = third.revision_history
        assert [len(r.revision_history) for r in (first, second, third)] == [1, 2, 3]
        assert [r.changes for r in history] == ["Dose registrada", "Notas", "Áreas"]
        assert [r.user_id for r in history] == ["owner", "staff", "owner"]
        assert history[0].user_name == "Ana"
        assert history[:2] == second.revision_history
        assert history[0] == first.revision_history[0]
        assert [r.timestamp for r in history] == sorted(r.timestamp for r in history)
        assert len({r.id for r in history}) == 3

        assert third.procedure_details == "20U"
        assert third.additional_notes == "Retorno em 15 dias"
        assert third.treated_areas == ["Testa"]
        assert third.updated_by == "owner"

    async def test_update_can_clear_notes(self, db_session: AsyncSession, feed, owner_ctx, patient):
        service = MedicalRecordService(feed)
        record = await service.create_record(
            db_session, owner_ctx, patient.id, record_in(additional_notes="temporário")
        )

        updated = await service.update_record(
            db_session,
            owner_ctx,
            record.id,
            MedicalRecordUpdate(additional_notes=None, change_description="Limpa notas"),
        )

        assert updated.additional_notes is None
        assert updated.procedure_type == "Botox"

    async def test_revision_author_defaults_when_nameless(
        self, db_session: AsyncSession, feed, owner_ctx, patient
    ):
        auth = owner_ctx.auth.model_copy(
            update={
                "user": owner_ctx.auth.user.model_copy(update={"display_name": ""}),
                "account": owner_ctx.auth.account.model_copy(update={"display_name": None}),
            }
        )
        nameless = owner_ctx.model_copy(update={"auth": auth})
        service = MedicalRecordService(feed)
        record = await service.create_record(db_session, owner_ctx, patient.id, record_in())

        updated = await service.update_record(
            db_session,
            nameless,
            record.id,
            MedicalRecordUpdate(procedure_details="10U", change_description="Ajuste"),
        )

        assert updated.revision_history[0].user_name == "Usuário"

    async def test_update_missing_record(self, db_session: AsyncSession, feed, owner_ctx):
        with pytest.raises(RecordNotFoundException):
            await MedicalRecordService(feed).update_record(
                db_session,
                owner_ctx,
                "missing",
                MedicalRecordUpdate(change_description="x"),
            )

    async def test_readonly_sees_history_but_cannot_edit(
        self, db_session: AsyncSession, feed, owner_ctx, readonly_ctx, patient
    ):
        service = MedicalRecordService(feed)
        record = await service.create_record(db_session, owner_ctx, patient.id, record_in())
        await service.update_record(
            db_session, owner_ctx, record.id, MedicalRecordUpdate(change_description="Ajuste")
        )

        seen = await service.get_record(db_session, readonly_ctx, record.id)
        assert len(seen.revision_history) == 1

        with pytest.raises(PermissionDeniedException):
            await service.update_record(
                db_session, readonly_ctx, record.id, MedicalRecordUpdate(change_description="x")
            )
        with pytest.raises(PermissionDeniedException):
            await service.create_record(db_session, readonly_ctx, patient.id, record_in())

        after = await service.get_record(db_session, owner_ctx, record.id)
        assert after.revision_history == seen.revision_history

    async def test_records_survive_patient_deletion(
        self, db_session: AsyncSession, feed, owner_ctx, patient
    ):
        service = MedicalRecordService(feed)
        record = await service.create_record(db_session, owner_ctx, patient.id, record_in())

        await PatientService(feed).delete_patient(db_session, owner_ctx, patient.id)

        assert (await service.get_record(db_session, owner_ctx, record.id)).id == record.id

    async def test_list_and_observe(
        self, db_session: AsyncSession, feed, owner_ctx, patient, session_factory
    ):
        service = MedicalRecordService(feed)
        query = service.observe(session_factory, owner_ctx.tenant_id, patient.id)
        snapshots = []
        subscription = query.subscribe(snapshots.append)
        await query.wait_idle()

        await service.create_record(db_session, owner_ctx, patient.id, record_in())
        await query.wait_idle()

        assert snapshots[0] == []
        assert len(snapshots[-1]) == 1
        assert await service.list_records(db_session, "other-clinic", patient.id) == []
        subscription.unsubscribe()
