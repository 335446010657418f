from __future__ import annotations

"""
CORS & response-hardening helpers
=================================

- `configure_cors(app, cfg)`: permissive CORS for the public reset endpoints
  (browser and mobile clients call them before any session exists).
- `set_sensitive_cache(response)`: mark OTP / token responses as never
  cacheable.
- `preflight_response()`: the body + headers returned for a bare `OPTIONS`
  that CORSMiddleware does not treat as a preflight.
- `cors_response_headers(cfg, origin)`: CORS headers for responses that
  never pass through CORSMiddleware.
"""

from typing import Dict, Iterable, Optional

from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from app.core.config import Settings

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type", "x-request-id"]
CORS_ALLOW_METHODS = ["POST", "OPTIONS"]


def set_sensitive_cache(target: Response) -> None:
    """Mark a Response as sensitive: no shared or private caching (idempotent)."""
    target.headers["Cache-Control"] = "no-store"
    target.headers.setdefault("Pragma", "no-cache")
    target.headers.setdefault("Expires", "0")


def _allow_origin_header(cfg: Settings) -> str:
    origins = cfg.cors_origins_list
    return "*" if "*" in origins else origins[0]


def cors_response_headers(cfg: Settings, origin: Optional[str] = None) -> Dict[str, str]:
    """
    CORS headers for responses built outside `CORSMiddleware` (the last-resort
    500 handler runs in `ServerErrorMiddleware`, which wraps it).
    """
    origins = cfg.cors_origins_list
    if "*" in origins:
        return {"Access-Control-Allow-Origin": "*"}
    if origin and origin in origins:
        return {"Access-Control-Allow-Origin": origin, "Access-Control-Allow-Credentials": "true", "Vary": "Origin"}
    return {}


def preflight_response(cfg: Settings) -> Response:
    response = JSONResponse(content="ok")
    response.headers["Access-Control-Allow-Origin"] = _allow_origin_header(cfg)
    response.headers["Access-Control-Allow-Headers"] = ", ".join(CORS_ALLOW_HEADERS)
    response.headers["Access-Control-Allow-Methods"] = ", ".join(CORS_ALLOW_METHODS)
    set_sensitive_cache(response)
    return response


def configure_cors(
    app,
    cfg: Settings,
    *,
    allow_methods: Optional[Iterable[str]] = None,
    allow_headers: Optional[Iterable[str]] = None,
) -> None:
    """Install CORS from `CORS_ALLOW_ORIGINS` (default `*`)."""
    origins = cfg.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Wildcard origins cannot be combined with credentials.
        allow_credentials="*" not in origins,
        allow_methods=list(allow_methods or CORS_ALLOW_METHODS),
        allow_headers=list(allow_headers or CORS_ALLOW_HEADERS),
        expose_headers=["X-Request-ID", "Retry-After"],
        max_age=3600,
    )


__all__ = [
    "CORS_ALLOW_HEADERS",
    "CORS_ALLOW_METHODS",
    "set_sensitive_cache",
    "cors_response_headers",
    "preflight_response",
    "configure_cors",
]
