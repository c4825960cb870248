from __future__ import annotations

import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

from app.context import reset_correlation_id, set_correlation_id
from app.core.config import get_settings


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, header_name: str | None = None, max_length: int | None = None) -> None:
        super().__init__(app)
        settings = get_settings()
        self.header_name = (header_name or settings.correlation_header).lower()
        self.max_length = max_length or settings.correlation_id_max_length

    def resolve(self, request: Request) -> str:
        """Reuse the caller's id when it is printable and short enough, otherwise mint one."""
        incoming = (request.headers.get(self.header_name) or "").strip()
        if incoming and len(incoming) <= self.max_length and incoming.isprintable():
            return incoming
        return str(uuid.uuid4())

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = self.resolve(request)
        request.state.correlation_id = correlation_id
        token = set_correlation_id(correlation_id)

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)

        response.headers[self.header_name] = correlation_id
        return response
