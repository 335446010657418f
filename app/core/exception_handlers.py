from __future__ import annotations

"""
JSON exception handlers for the reset endpoints.

FastAPI wires these in `app/main.py`. Every error leaves the service as
`{"error": <message>, "code": <CODE>}`; unexpected faults collapse to a
generic 500 body with the stack trace kept in the logs only.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException
from app.middleware.request_id import HEADER_NAME, get_request_id
from app.security_headers import cors_response_headers

logger = logging.getLogger(__name__)

_NO_STORE = {"Cache-Control": "no-store"}


def _error(status_code: int, body: dict, headers: dict | None = None) -> JSONResponse:
    merged = dict(_NO_STORE)
    if headers:
        merged.update(headers)
    return JSONResponse(status_code=status_code, content=body, headers=merged)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore
    if isinstance(exc, AppException):
        return _error(exc.status_code, exc.to_problem(), exc.headers)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error(exc.status_code, {"error": detail, "code": f"HTTP_{exc.status_code}"}, exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore
    # Malformed JSON and wrong field types are client input errors, not 422s.
    logger.info("Rejected malformed body on %s: %d error(s)", request.url.path, len(exc.errors()))
    return _error(
        status.HTTP_400_BAD_REQUEST,
        {"error": "Invalid request body", "code": "INVALID_INPUT"},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    # Runs outside the CORS and request-id middlewares; add their headers here.
    headers: dict = {}
    cfg = getattr(request.app.state, "settings", None)
    if cfg is not None:
        headers.update(cors_response_headers(cfg, request.headers.get("origin")))
    req_id = get_request_id(request)
    if req_id:
        headers[HEADER_NAME] = req_id
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"error": "Internal server error"},
        headers,
    )


__all__ = [
    "http_exception_handler",
    "validation_exception_handler",
    "global_exception_handler",
]
