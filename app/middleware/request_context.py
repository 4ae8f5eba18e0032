"""
RequestContext Middleware - request id and client address for every request.

Sets request.state.request_id / request.state.ip_address and binds both into
structlog's contextvars, so every log line emitted while handling the request
(collector, cache, aggregator) carries the same request_id. The id is echoed
back in the X-Request-ID header; a well-formed incoming X-Request-ID from the
dashboard is reused instead of minting a new one.
"""

import re
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-]{8,64}$")


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = (
            incoming if incoming and _REQUEST_ID_PATTERN.match(incoming) else str(uuid.uuid4())
        )
        request.state.request_id = request_id

        ip_address = self._extract_client_ip(request)
        request.state.ip_address = ip_address

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, ip_address=ip_address)

        logger.debug("Request started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["X-Request-ID"] = request_id
        return response

    def _extract_client_ip(self, request: Request) -> str | None:
        """
        Client IP, honouring X-Forwarded-For only when TRUST_X_FORWARDED_FOR is
        on and the direct peer is one of TRUSTED_PROXY_IPS.
        """
        direct = request.client.host if request.client else None
        if not settings.TRUST_X_FORWARDED_FOR or direct not in settings.TRUSTED_PROXY_IPS:
            return direct

        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            # "client, proxy1, proxy2"
            return forwarded_for.split(",")[0].strip()
        return direct
