"""Ad-hoc SHACL validation endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rdfforge.api.deps import get_runtime, get_session
from rdfforge.daemon.runtime import ForgeRuntime
from rdfforge.schemas.validation import ValidationRequest, ValidationResponse
from rdfforge.services.validation_service import ValidationService

router = APIRouter(prefix="/validation", tags=["validation"])


@router.post("/run", response_model=ValidationResponse)
async def run_validation(
    data: ValidationRequest,
    session: AsyncSession = Depends(get_session),
    runtime: ForgeRuntime = Depends(get_runtime),
):
    """Validate inline data, or a graph in a triplestore, against a stored or inline shape."""
    return await ValidationService(session, runtime.triplestores).run(**data.model_dump())
