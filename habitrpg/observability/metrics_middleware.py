"""
FastAPI middleware for automatic Prometheus metrics collection.

This middleware automatically tracks:
- Request counts by endpoint, method, and status code
- Request latency histograms
- Requests in progress (concurrent requests)
"""

import logging
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from habitrpg.observability.metrics import (
    http_requests_total,
    http_request_duration_seconds,
    http_requests_in_progress,
)

logger = logging.getLogger(__name__)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect Prometheus metrics for HTTP requests.

    Automatically tracks:
    - Total requests (counter) by method, endpoint, status
    - Request duration (histogram) by method, endpoint
    - Requests in progress (gauge) by method, endpoint
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        method = request.method
        path = normalize_path(request.url.path)

        http_requests_in_progress.labels(method=method, endpoint=path).inc()
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code

        except Exception as e:
            logger.error(f"Request failed: {e}", exc_info=True)
            raise

        finally:
            http_requests_in_progress.labels(method=method, endpoint=path).dec()

            duration = time.time() - start_time

            http_requests_total.labels(
                method=method, endpoint=path, status=status_code
            ).inc()

            http_request_duration_seconds.labels(
                method=method, endpoint=path
            ).observe(duration)

        return response


def normalize_path(path: str) -> str:
    """
    Normalize request path to reduce cardinality.

    Numeric ids are replaced with a placeholder:
    - /habits/123/complete -> /habits/{id}/complete
    - /habits/7/permanent -> /habits/{id}/permanent
    """
    if path in ("/", "/health", "/metrics"):
        return path

    parts = path.strip("/").split("/")
    normalized_parts = ["{id}" if part.isdigit() else part for part in parts]

    return "/" + "/".join(normalized_parts)


def setup_metrics_middleware(app):
    """
    Add Prometheus metrics middleware to FastAPI application.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_metrics_middleware(app)
    """
    from habitrpg.config import ENABLE_METRICS

    if not ENABLE_METRICS:
        logger.info("Metrics collection is disabled (ENABLE_METRICS=false)")
        return

    app.add_middleware(PrometheusMiddleware)
    logger.info("Prometheus metrics middleware added to FastAPI")
