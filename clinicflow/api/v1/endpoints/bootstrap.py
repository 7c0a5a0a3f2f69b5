"""First-run bootstrap endpoint."""

from fastapi import APIRouter, status

from clinicflow.dependencies import Caller, Contexts, DatabaseSession
from clinicflow.schemas.access import AccessStateResponse
from clinicflow.services.bootstrap_service import BootstrapService

router = APIRouter()


@router.post(
    "/bootstrap",
    response_model=AccessStateResponse,
    status_code=status.HTTP_200_OK,
    summary="Become the first administrator",
)
async def bootstrap(ctx: Caller, db: DatabaseSession, contexts: Contexts) -> AccessStateResponse:
    """
    Promote the caller to administrator and provision their clinic.

    Only allowed while no administrator exists. A previous run that failed
    halfway is resumed. Returns the caller's refreshed access state.
    """
    fresh = await BootstrapService(contexts).bootstrap(db, ctx)
    return AccessStateResponse.from_context(fresh)
