"""Request instrumentation: request ids, latency metrics and access logs."""

from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from formguard.obs import logging as obs_logging
from formguard.obs import metrics

logger = logging.getLogger("formguard.http")

# probes and scrapes are counted but not access-logged
_QUIET_PATHS = frozenset({"/health/live", "/health/ready", "/metrics"})


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	path = getattr(route, "path", None)
	return path if path else request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get("X-Request-Id") or uuid4().hex
		tokens = obs_logging.bind_context(request_id=request_id, route=request.url.path)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
			response.headers["X-Request-Id"] = request_id
			return response
		except Exception:
			logger.exception("unhandled error", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - started
			metrics.record_request(_route_template(request), request.method, status_code, elapsed)
			if request.url.path not in _QUIET_PATHS:
				logger.info(
					"request completed",
					extra={"method": request.method, "status": status_code, "duration_ms": round(elapsed * 1000, 2)},
				)
			obs_logging.reset_context(tokens)


def install(app: FastAPI) -> None:
	app.add_middleware(ObservabilityMiddleware)
