from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.api.deps import get_provisioning_service
from app.errors import error_payload
from app.schemas.provisioning import ProvisionCreate, ProvisionResponse
from app.services.provisioning_service import ProvisioningService

router = APIRouter(prefix="/provisioning", tags=["provisioning"])


@router.post(
    "",
    response_model=ProvisionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={502: {"description": "A step with no fallback failed; see details.stage"}},
)
def provision(payload: ProvisionCreate, svc: ProvisioningService = Depends(get_provisioning_service)):
    result = svc.provision(payload.to_request())
    response = ProvisionResponse.model_validate(result)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=error_payload(
                "provisioning_failed",
                result.error or "Provisioning failed",
                jsonable_encoder(response),
            ),
        )
    return response
