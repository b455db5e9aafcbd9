import logging

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.services.exceptions import (
    NotFoundError,
    ProvisioningDomainError,
    ProvisioningError,
    TransitionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_DOMAIN_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    TransitionError: 409,
    ProvisioningError: 502,
}


def error_payload(code: str, message: str, details):
    return {"code": code, "message": message, "details": details}


def domain_status_code(exc: ProvisioningDomainError) -> int:
    for exc_type, status_code in _DOMAIN_STATUS.items():
        if isinstance(exc, exc_type):
            return status_code
    return 400


def register_error_handlers(app) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail
        code = f"http_{exc.status_code}"
        message = "Request failed"
        details = None
        if isinstance(detail, dict):
            code = detail.get("code", code)
            message = detail.get("message", message)
            details = detail.get("details")
        elif isinstance(detail, str):
            message = detail
        else:
            details = detail
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(code, message, details),
            headers=exc.headers,
        )

    @app.exception_handler(ProvisioningDomainError)
    async def domain_exception_handler(request: Request, exc: ProvisioningDomainError):
        return JSONResponse(
            status_code=domain_status_code(exc),
            content=error_payload(exc.code, exc.message, exc.details()),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_payload("validation_error", "Validation error", jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_payload("internal_error", "Internal server error", None),
        )
