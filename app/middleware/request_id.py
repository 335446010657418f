# app/middleware/request_id.py
from __future__ import annotations

"""
# Password Reset — Request ID Middleware (pure ASGI)

- Reuses a client-supplied `X-Request-ID` when it is a valid UUIDv4.
- Generates a UUIDv4 otherwise.
- Exposes it as `request.state.request_id` and echoes it on the response.
- Binds `request_id` into the **loguru** context for the whole request, so
  every log line of a reset attempt can be correlated.

## Usage
    app.add_middleware(RequestIDMiddleware)
"""

import uuid

from loguru import logger
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

HEADER_NAME = "X-Request-ID"
MAX_ID_LENGTH = 64


def _client_request_id(headers: Headers, header_name: str) -> str | None:
    candidate = (headers.get(header_name) or "").strip()
    if not candidate or len(candidate) > MAX_ID_LENGTH:
        return None
    try:
        parsed = uuid.UUID(candidate)
    except ValueError:
        return None
    return str(parsed) if parsed.version == 4 else None


class RequestIDMiddleware:
    def __init__(self, app: ASGIApp, header_name: str = HEADER_NAME) -> None:
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)

        req_id = _client_request_id(Headers(scope=scope), self.header_name) or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = req_id
        name_bytes = self.header_name.lower().encode("latin-1")

        async def _send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers = [(k, v) for (k, v) in message.get("headers", []) if k.lower() != name_bytes]
                headers.append((name_bytes, req_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        with logger.contextualize(request_id=req_id):
            await self.app(scope, receive, _send_wrapper)


def get_request_id(request) -> str:
    """Current request id from `request.state` ("" if absent)."""
    return getattr(getattr(request, "state", object()), "request_id", "") or ""


__all__ = ["RequestIDMiddleware", "get_request_id"]
