from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from chatcommerce.core.metrics import request_metrics
from chatcommerce.core.request_context import clear_request_context, get_customer_id, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _endpoint_label(request: Request) -> str:
    # template da rota, não o path: /simulator/sessions/{customer_id} não pode virar uma métrica por cliente
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        response = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            endpoint = _endpoint_label(request)
            request_metrics.observe(
                endpoint=endpoint, method=request.method, status_code=status_code, duration_ms=duration_ms
            )

            log = logger.warning if status_code >= 500 else logger.info
            log(
                "request completed",
                extra={
                    "request_id": request_id,
                    "customer_id": get_customer_id() or request.path_params.get("customer_id"),
                    "endpoint": endpoint,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )

            if response is not None:
                response.headers[REQUEST_ID_HEADER] = request_id
            clear_request_context()
