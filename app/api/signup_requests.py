from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.api.deps import AdminContext, get_signup_service, require_master_admin
from app.errors import error_payload
from app.schemas.common import ListResponse
from app.schemas.signup import (
    SignupApprovalResponse,
    SignupApproveRequest,
    SignupRejectRequest,
    SignupRequestCreate,
    SignupRequestRead,
)
from app.services.signup_service import ApprovalOptions, SignupService

router = APIRouter(prefix="/signup-requests", tags=["signup-requests"])


@router.post("", response_model=SignupRequestRead, status_code=status.HTTP_201_CREATED)
def submit_signup_request(payload: SignupRequestCreate, svc: SignupService = Depends(get_signup_service)):
    return svc.submit(
        contact_person=payload.contact_person,
        email=str(payload.email),
        tier=payload.tier,
        dealership_name=payload.dealership_name,
        phone=payload.phone,
        dealership_count=payload.dealership_count,
    )


@router.get("", response_model=ListResponse[SignupRequestRead])
def list_signup_requests(
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    svc: SignupService = Depends(get_signup_service),
    admin: AdminContext = Depends(require_master_admin),
):
    items = svc.list_requests(status=status_filter, limit=limit, offset=offset)
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.get("/{request_id}", response_model=SignupRequestRead)
def get_signup_request(
    request_id: str,
    svc: SignupService = Depends(get_signup_service),
    admin: AdminContext = Depends(require_master_admin),
):
    return svc.get(request_id)


@router.post("/{request_id}/approve", response_model=SignupApprovalResponse)
def approve_signup_request(
    request_id: str,
    payload: SignupApproveRequest | None = None,
    svc: SignupService = Depends(get_signup_service),
    admin: AdminContext = Depends(require_master_admin),
):
    payload = payload or SignupApproveRequest()
    options = ApprovalOptions(
        admin_email=str(payload.admin_email) if payload.admin_email else None,
        admin_name=payload.admin_name,
        phone=payload.phone,
        temp_password=payload.temp_password,
        members=[member.to_member() for member in payload.members],
        dealership_count=payload.dealership_count,
        processed_by=admin.user_id,
    )
    result = svc.approve(request_id, options)
    response = SignupApprovalResponse.model_validate(result)
    if not result.approved:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=error_payload("approval_failed", result.error or "Approval failed", jsonable_encoder(response)),
        )
    return response


@router.post("/{request_id}/reject", response_model=SignupRequestRead)
def reject_signup_request(
    request_id: str,
    payload: SignupRejectRequest | None = None,
    svc: SignupService = Depends(get_signup_service),
    admin: AdminContext = Depends(require_master_admin),
):
    reason = payload.reason if payload else None
    return svc.reject(request_id, reason=reason, processed_by=admin.user_id)
