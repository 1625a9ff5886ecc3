"""
HTTP middleware for the identity engine API.
"""

from __future__ import annotations

import uuid

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

import payback.config as config

REQUEST_ID_HEADER = b"x-request-id"
MAX_REQUEST_ID_LENGTH = 128


class RequestIdMiddleware:
    """
    ASGI middleware that guarantees every request carries an X-Request-ID.

    A caller-supplied id is kept; otherwise one is generated. The id is
    echoed on the response and reaches audit events through the request
    context.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = list(scope.get("headers", []))
        request_id = None
        for header_name, header_value in headers:
            if header_name.lower() == REQUEST_ID_HEADER:
                request_id = header_value
                break

        if not request_id or len(request_id) > MAX_REQUEST_ID_LENGTH:
            request_id = uuid.uuid4().hex.encode("latin1")
            headers = [item for item in headers if item[0].lower() != REQUEST_ID_HEADER]
            headers.append((REQUEST_ID_HEADER, request_id))
            scope = dict(scope, headers=headers)

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                response_headers = list(message.get("headers", []))
                response_headers.append((REQUEST_ID_HEADER, request_id))
                message = dict(message, headers=response_headers)
            await send(message)

        await self.app(scope, receive, send_with_request_id)


def configure_middleware(app) -> None:
    """Configure request ids, host allowlist and CORS for the FastAPI app."""
    app.add_middleware(RequestIdMiddleware)

    if config.TRUSTED_HOSTS:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=config.TRUSTED_HOSTS,
        )

    # CORS stays outermost so error responses still carry its headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
