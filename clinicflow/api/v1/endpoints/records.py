"""Medical record endpoints."""

from fastapi import APIRouter, status

from clinicflow.dependencies import ActiveCaller, DatabaseSession, FeedDep
from clinicflow.schemas.medical_records import (
    MedicalRecord,
    MedicalRecordCreate,
    MedicalRecordUpdate,
)
from clinicflow.services.medical_record_service import MedicalRecordService
from clinicflow.services.patient_service import PatientService

router = APIRouter(tags=["Medical Records"])


@router.get(
    "/patients/{patient_id}/records",
    response_model=list[MedicalRecord],
    summary="List a patient's records",
)
async def list_records(
    patient_id: str, ctx: ActiveCaller, db: DatabaseSession, feed: FeedDep
) -> list[MedicalRecord]:
    """Records of one patient of the caller's clinic, newest first."""
    await PatientService(feed).get_patient(db, ctx, patient_id)
    return await MedicalRecordService(feed).list_records(db, ctx.tenant_id, patient_id)


@router.post(
    "/patients/{patient_id}/records",
    response_model=MedicalRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Record a procedure",
)
async def create_record(
    patient_id: str,
    record_data: MedicalRecordCreate,
    ctx: ActiveCaller,
    db: DatabaseSession,
    feed: FeedDep,
) -> MedicalRecord:
    return await MedicalRecordService(feed).create_record(db, ctx, patient_id, record_data)


@router.get("/records/{record_id}", response_model=MedicalRecord, summary="Get a record")
async def get_record(
    record_id: str, ctx: ActiveCaller, db: DatabaseSession, feed: FeedDep
) -> MedicalRecord:
    return await MedicalRecordService(feed).get_record(db, ctx, record_id)


@router.patch("/records/{record_id}", response_model=MedicalRecord, summary="Update a record")
async def update_record(
    record_id: str,
    record_data: MedicalRecordUpdate,
    ctx: ActiveCaller,
    db: DatabaseSession,
    feed: FeedDep,
) -> MedicalRecord:
    """
    Change record fields.

    ``change_description`` is required and is appended to the record's
    revision history together with the editor and a timestamp.
    """
    return await MedicalRecordService(feed).update_record(db, ctx, record_id, record_data)
