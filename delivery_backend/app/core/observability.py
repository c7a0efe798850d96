"""
Observability middleware and logging setup.

Every request gets a correlation id (taken from ``X-Correlation-ID`` when
the caller sends one) and produces exactly one access log record whose
context fields are rendered as ``key=value`` pairs.
"""

import logging
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("delivery.http")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Attributes every LogRecord has; anything else arrived through ``extra=``
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if context:
            line += " " + " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return line


def configure_logging(level: str = "INFO") -> None:
    """Install the context-aware handler on the root logger once at startup."""
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter(LOG_FORMAT))
    logging.basicConfig(level=level.upper(), handlers=[handler])
    logging.getLogger("delivery").setLevel(level.upper())


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}"

        context = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(elapsed_ms, 2),
            "client_ip": request.client.host if request.client else "unknown",
        }

        if response.status_code >= 500:
            logger.error("%s %s failed", request.method, request.url.path, extra=context)
        elif response.status_code >= 400:
            logger.warning("%s %s rejected", request.method, request.url.path, extra=context)
        else:
            logger.info("%s %s served", request.method, request.url.path, extra=context)

        return response
