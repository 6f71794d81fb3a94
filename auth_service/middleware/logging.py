"""Structured request logging with a correlation ID"""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from auth_service.core.config import logger
from auth_service.core.dependencies import get_client_ip

CORRELATION_ID_HEADER = "X-Correlation-ID"


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with a correlation ID

    An incoming ``X-Correlation-ID`` is reused so traces can span services;
    otherwise a fresh one is generated. Request bodies are never logged, since
    they carry passwords and refresh tokens.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        client_ip = get_client_ip(request)
        log_context = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": client_ip,
        }

        logger.debug(f"Request started: {request.method} {request.url.path}", extra=log_context)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path} - {e}",
                extra={**log_context, "duration_ms": _elapsed_ms(started)},
                exc_info=True,
            )
            raise

        logger.info(
            f"{request.method} {request.url.path} - {response.status_code}",
            extra={
                **log_context,
                "status_code": response.status_code,
                "duration_ms": _elapsed_ms(started),
            },
        )
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
