from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ACCESS_LOGGER_NAME = "prs_dashboard.access"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON access line per request, tagged with the caller when known."""

    def __init__(self, app, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self.logger = logger if logger is not None else logging.getLogger(ACCESS_LOGGER_NAME)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            payload = self._payload(request, request_id, status=500, start=start, event="http_request_error")
            self._log(payload, level=logging.ERROR)
            raise

        response.headers.setdefault("x-request-id", request_id)
        payload = self._payload(request, request_id, status=response.status_code, start=start)
        source = response.headers.get("x-dashboard-source")
        if source:
            payload["dashboard_source"] = source
        self._log(payload)
        return response

    def _payload(
        self, request: Request, request_id: str, *, status: int, start: float, event: str = "http_request"
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "event": event,
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }
        for attribute in ("user_id", "user_role"):
            value = getattr(request.state, attribute, None)
            if value:
                payload[attribute] = value
        return payload

    def _log(self, payload: dict[str, object], level: int = logging.INFO) -> None:
        self.logger.log(level, json.dumps(payload, separators=(",", ":")))
