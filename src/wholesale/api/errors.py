"""Render wholesale failures as JSON error responses.

Every failure keeps its kind and code on the wire so clients can tell
"can't cancel, already shipped" apart from "try again".
"""

from datetime import UTC, datetime

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ValidationError

from wholesale.shared.errors import (
    ErrorKind,
    InsufficientInventoryError,
    InvalidTransitionError,
    MutationTimeoutError,
    NegativeInventoryError,
    ProductNotOrderableError,
    RateLimitedError,
    StorageUnavailableError,
    UnauthorizedActorError,
    ValidationFailedError,
    WholesaleError,
)

logger = structlog.get_logger(__name__)

_STATUS_BY_CLASS = {
    InsufficientInventoryError: 409,
    ProductNotOrderableError: 409,
    NegativeInventoryError: 422,
    InvalidTransitionError: 422,
    UnauthorizedActorError: 403,
    RateLimitedError: 429,
    MutationTimeoutError: 504,
    StorageUnavailableError: 503,
}

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.BUSINESS_RULE: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.TRANSIENT_CONFLICT: 409,
    ErrorKind.SYSTEM: 500,
}


def status_code_for(exc: WholesaleError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_CLASS:
            return _STATUS_BY_CLASS[cls]
    return _STATUS_BY_KIND[exc.kind]


def error_body(exc: WholesaleError, request: Request) -> dict:
    return {
        "error": exc.to_dict(),
        "timestamp": datetime.now(UTC).isoformat(),
        "path": request.url.path,
        "request_id": getattr(request.state, "request_id", None),
    }


async def wholesale_error_handler(request: Request, exc: WholesaleError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        status_code=status_code,
        error_kind=exc.kind.value,
        error_code=exc.code.value,
        error=exc.message,
    )
    headers = {}
    if isinstance(exc, RateLimitedError) and "retry_after" in exc.details:
        headers["Retry-After"] = str(max(int(exc.details["retry_after"]), 1))
    return JSONResponse(status_code=status_code, content=error_body(exc, request), headers=headers)


async def domain_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return await wholesale_error_handler(request, ValidationFailedError(fields=exc.messages))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        fields.setdefault(location or "request", []).append(error.get("msg", "invalid"))
    return await wholesale_error_handler(request, ValidationFailedError(fields=fields))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WholesaleError, wholesale_error_handler)
    app.add_exception_handler(ValidationError, domain_validation_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
