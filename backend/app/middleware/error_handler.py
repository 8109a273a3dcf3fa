"""Error handler middleware for uncaught exceptions."""

import logging
from typing import Callable
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware for handling uncaught exceptions.

    - Logs errors with request context
    - Returns safe error messages to clients (no stack traces in production)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Handle request and catch any uncaught exceptions."""
        try:
            response = await call_next(request)
            return response

        except Exception as exc:
            # Query strings carry family IDs; log the path only
            logger.exception(
                "Unhandled %s on %s %s",
                type(exc).__name__,
                request.method,
                request.url.path,
                extra={"client_host": request.client.host if request.client else None},
            )

            if settings.DEBUG:
                # Development: Show detailed error
                error_detail = {
                    "error": str(exc),
                    "type": type(exc).__name__,
                    "detail": "An error occurred processing your request",
                }
            else:
                # Production: Generic error message (never expose internals)
                error_detail = {
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred. Please try again later.",
                }

            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_detail
            )
