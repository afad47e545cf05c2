# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Operator API error handlers.

Every failure leaves the API as the same JSON body:

    {
        "error": "ResourceNotFoundError",
        "message": "Job with id 123 not found",
        "status_code": 404,
        "detail": {"resource_type": "Job", "resource_id": 123}
    }

Upstream API failures map to 502 and quota backpressure to 503; both carry a
Retry-After header when the wait is known.
"""

import logging
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.exceptions import IndexerException, QuotaExhaustedError, SecondaryRateLimitError, UpstreamError

logger = logging.getLogger(__name__)


def create_error_response(
    status_code: int,
    error_type: str,
    message: str,
    detail: Optional[Dict[str, Any]] = None,
    retry_after: Optional[int] = None
) -> JSONResponse:
    content: Dict[str, Any] = {"error": error_type, "message": message, "status_code": status_code}
    if detail:
        content["detail"] = detail

    response = JSONResponse(status_code=status_code, content=content)
    if retry_after:
        response.headers["Retry-After"] = str(retry_after)
    return response


def _from_exception(exc: IndexerException, retry_after: Optional[int] = None) -> JSONResponse:
    return create_error_response(exc.status_code, exc.__class__.__name__, exc.message, exc.detail, retry_after)


# =============================================================================
# Handlers
# =============================================================================

async def indexer_exception_handler(request: Request, exc: IndexerException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}",
        exc_info=exc.status_code >= 500,
        extra={"exception_type": exc.__class__.__name__, "detail": exc.detail}
    )
    return _from_exception(exc)


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """Repository host errors reached an operator call (token status refresh, inline curation)."""
    logger.warning(
        f"Upstream API error on {request.url.path}: {exc.status} {exc.message}",
        extra={"upstream_status": exc.status}
    )
    retry_after = exc.retry_after if isinstance(exc, SecondaryRateLimitError) else None
    return _from_exception(exc, retry_after)


async def quota_exhausted_handler(request: Request, exc: QuotaExhaustedError) -> JSONResponse:
    logger.info(f"Quota backpressure on {request.url.path}: {exc.message}")
    retry_after = max(1, int(exc.reset_at - time.time())) if exc.reset_at else None
    return _from_exception(exc, retry_after)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(loc) for loc in error["loc"]), "message": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(errors)} invalid field(s)")
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        {"errors": errors}
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Catalog database failures.

    Constraint violations (for example a duplicate curated list id) are 409;
    anything else is 500.
    """
    database_message = str(getattr(exc, "orig", None) or exc)
    logger.error(f"Database error on {request.url.path}: {database_message}", exc_info=True)

    if isinstance(exc, IntegrityError):
        return create_error_response(
            status.HTTP_409_CONFLICT,
            "DatabaseIntegrityError",
            "Catalog constraint violation",
            {"database_message": database_message}
        )
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DatabaseError",
        "Catalog database operation failed",
        {"database_message": database_message}
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {exc.__class__.__name__} on {request.method} {request.url.path}: {exc}",
        exc_info=True
    )
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
        {"exception_type": exc.__class__.__name__}
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the handlers; the most specific exception class wins."""
    app.add_exception_handler(IndexerException, indexer_exception_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.add_exception_handler(QuotaExhaustedError, quota_exhausted_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    logger.debug("Error handlers registered")


__all__ = [
    "register_error_handlers",
    "create_error_response",
    "indexer_exception_handler",
    "upstream_error_handler",
    "quota_exhausted_handler",
    "validation_error_handler",
    "database_error_handler",
    "generic_exception_handler",
]
