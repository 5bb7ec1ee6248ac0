# backend/tradeledger/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

Takes the ID from X-Correlation-ID, else X-Request-ID, else generates a
UUID; binds it for the request (so every log line carries it) and echoes
it back in the X-Correlation-ID response header.

Incoming IDs longer than 128 characters or containing characters outside
[A-Za-z0-9._-] are replaced by a generated one, so a client cannot inject
text into log lines.

Usage:
    app.add_middleware(CorrelationIdMiddleware)
"""

import re
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from tradeledger.utils.context import correlation_scope

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class CorrelationIdMiddleware:
    """Pure ASGI middleware; works for streaming responses as well."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = self.extract(Headers(scope=scope))

        async def send_with_header(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[CORRELATION_ID_HEADER] = correlation_id
            await send(message)

        with correlation_scope(correlation_id):
            await self.app(scope, receive, send_with_header)

    @staticmethod
    def extract(headers: Headers) -> str:
        for name in (CORRELATION_ID_HEADER, REQUEST_ID_HEADER):
            value = headers.get(name)
            if value and _VALID_ID.match(value):
                return value
        return str(uuid.uuid4())
