"""FastAPI middleware that captures unhandled exceptions and logs them to the DB.

Every 5xx response is recorded in the error_logs table so failed municipality
lookups and upstream outages can be reviewed after the fact.
"""

from __future__ import annotations

import logging
import time

from fastapi import HTTPException, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from app.models.error_log import ErrorSeverity
from app.services.error_logger import log_error_standalone

logger = logging.getLogger("seemycity.middleware")


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions, returns 500, and persists the error."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        ip_address = request.client.host if request.client else None

        try:
            response = await call_next(request)
        except HTTPException:
            raise
        except Exception as exc:
            elapsed_ms = round((time.time() - start) * 1000, 2)
            logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

            severity = ErrorSeverity.CRITICAL if "database" in str(exc).lower() else ErrorSeverity.ERROR
            await log_error_standalone(
                exc,
                severity=severity,
                module="middleware.error_capture",
                request_method=request.method,
                request_path=str(request.url.path),
                status_code=500,
                response_time_ms=elapsed_ms,
                ip_address=ip_address,
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error"},
            )

        if response.status_code >= 400:
            elapsed_ms = round((time.time() - start) * 1000, 2)
            # 4xx are client mistakes (unknown municipality, rate limit)
            severity = ErrorSeverity.ERROR if response.status_code >= 500 else ErrorSeverity.WARNING
            await log_error_standalone(
                Exception(f"HTTP {response.status_code} on {request.method} {request.url.path}"),
                severity=severity,
                module="middleware.error_capture",
                function_name="dispatch",
                request_method=request.method,
                request_path=str(request.url.path),
                status_code=response.status_code,
                response_time_ms=elapsed_ms,
                ip_address=ip_address,
            )
        return response
