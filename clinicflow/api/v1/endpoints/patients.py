"""Patient endpoints."""

from fastapi import APIRouter, Query, status

from clinicflow.dependencies import ActiveCaller, DatabaseSession, FeedDep
from clinicflow.schemas.patients import Patient, PatientCreate, PatientUpdate
from clinicflow.services.patient_service import PatientService

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.get("", response_model=list[Patient], summary="List patients")
async def list_patients(
    ctx: ActiveCaller,
    db: DatabaseSession,
    feed: FeedDep,
    search: str | None = Query(None, description="Filter by name, email or phone"),
) -> list[Patient]:
    """
    Patients of the caller's clinic, newest first.

    ``search`` matches name and email case-insensitively and phone as stored.
    """
    service = PatientService(feed)
    patient_list = await service.list_patients(db, ctx.tenant_id)
    return service.search_patients(patient_list, search)


@router.post(
    "",
    response_model=Patient,
    status_code=status.HTTP_201_CREATED,
    summary="Register a patient",
)
async def create_patient(
    patient_data: PatientCreate,
    ctx: ActiveCaller,
    db: DatabaseSession,
    feed: FeedDep,
) -> Patient:
    return await PatientService(feed).create_patient(db, ctx, patient_data)


@router.get("/{patient_id}", response_model=Patient, summary="Get a patient")
async def get_patient(
    patient_id: str, ctx: ActiveCaller, db: DatabaseSession, feed: FeedDep
) -> Patient:
    return await PatientService(feed).get_patient(db, ctx, patient_id)


@router.patch("/{patient_id}", response_model=Patient, summary="Update a patient")
async def update_patient(
    patient_id: str,
    patient_data: PatientUpdate,
    ctx: ActiveCaller,
    db: DatabaseSession,
    feed: FeedDep,
) -> Patient:
    """Merge the sent fields into the patient."""
    return await PatientService(feed).update_patient(db, ctx, patient_id, patient_data)


@router.delete(
    "/{patient_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a patient",
)
async def delete_patient(
    patient_id: str, ctx: ActiveCaller, db: DatabaseSession, feed: FeedDep
) -> None:
    """Delete the patient; medical records stay on file."""
    await PatientService(feed).delete_patient(db, ctx, patient_id)
