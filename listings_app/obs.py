# listings_app/obs.py
from __future__ import annotations

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from listings_app.logs import get_logger
from listings_app.metrics import metrics

logger = get_logger("listings.http")


class RequestObservability(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(req_id=req_id)
        start = time.perf_counter()
        status = 500
        try:
            response: Response = await call_next(request)
            status = response.status_code
            response.headers["x-request-id"] = req_id
            return response
        finally:
            ms = (time.perf_counter() - start) * 1000
            path = request.url.path
            method = request.method
            # keyed by route template so ids in the path cannot grow the histogram map
            route = request.scope.get("route")
            template = getattr(route, "path", None) or "unmatched"
            metrics.inc("http.requests.total")
            metrics.observe_ms(f"http.latency.{method}.{template}", ms)
            logger.info("request", method=method, path=path, status=status, ms=round(ms, 1))
            structlog.contextvars.unbind_contextvars("req_id")
