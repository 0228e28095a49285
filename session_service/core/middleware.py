"""Request middleware."""

import logging
import re
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from session_service.core.logging_config import set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Request-ID"

# Accept caller-supplied ids only if they are short and printable
_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with a correlation ID.

    Reuses the caller's X-Request-ID when it is well formed, otherwise
    generates one. The ID is available to log records for the duration of the
    request and echoed back in the response header.
    """

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get(CORRELATION_HEADER, "")
        correlation_id = incoming if _VALID_CORRELATION_ID.match(incoming) else str(uuid.uuid4())
        set_correlation_id(correlation_id)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.debug(
                f"{request.method} {request.url.path} handled in {elapsed_ms:.1f}ms"
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        set_correlation_id(None)
        return response
