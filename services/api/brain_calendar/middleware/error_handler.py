"""Global error handling middleware."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from brain_calendar.middleware.logging import redact_pii

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return a response with no internal detail."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                "Unhandled exception on %s %s: %s\n%s",
                request.method,
                redact_pii(str(request.url.path)),
                redact_pii(str(exc)),
                redact_pii(traceback.format_exc()),
            )

            return JSONResponse(
                status_code=500,
                content={"detail": "An internal error occurred. Please try again later."},
            )
