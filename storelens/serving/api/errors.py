"""
Exception Handlers

Maps domain exceptions to HTTP responses with one JSON body shape:
``{"error": <code>, "detail": <message>}``.

Usage:
    app = FastAPI()
    configure_exception_handlers(app)
"""

from typing import Dict, Type

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from storelens.exceptions import (
    AppendOnlyViolation,
    InvalidRecord,
    InvalidStatusTransition,
    MalformedRecord,
    NotFound,
    StoreLensError,
    Unauthorized,
    UpstreamUnavailable,
)

logger = structlog.get_logger(__name__)

STATUS_CODES: Dict[Type[StoreLensError], int] = {
    NotFound: 404,
    MalformedRecord: 422,
    InvalidRecord: 422,
    UpstreamUnavailable: 502,
    Unauthorized: 401,
    InvalidStatusTransition: 409,
    AppendOnlyViolation: 405,
}


def status_code_for(exc: StoreLensError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


async def storelens_error_handler(request: Request, exc: StoreLensError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request failed",
        error=exc.code,
        detail=exc.message,
        status_code=status_code,
        path=request.url.path,
    )

    body = exc.to_dict()
    if "errors" in exc.context:
        body["errors"] = exc.context["errors"]

    headers = {"WWW-Authenticate": "Tenant"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def configure_exception_handlers(app: FastAPI) -> None:
    """Register the domain exception handler on the application"""
    app.add_exception_handler(StoreLensError, storelens_error_handler)
