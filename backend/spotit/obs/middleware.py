"""Per-request instrumentation: request ids, access logs and HTTP metrics."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from spotit.obs import logging as obs_logging
from spotit.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"
# Scrapes and probes would drown the access log.
_QUIET_PATHS = frozenset({"/metrics", "/health/live", "/health/ready"})

_access_log = obs_logging.get_logger("spotit.http")


def _route_label(request: Request) -> str:
	# Templated path keeps metric label cardinality bounded (/spots/{spot_id}).
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		tokens = obs_logging.bind_context(request_id=request_id)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			_access_log.exception("http_request_failed", extra={"method": request.method, "path": request.url.path})
			raise
		finally:
			elapsed = time.perf_counter() - started
			route = _route_label(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			if request.url.path not in _QUIET_PATHS:
				_access_log.info(
					"http_request",
					extra={
						"method": request.method,
						"route": route,
						"status": status_code,
						"latency_ms": round(elapsed * 1000, 2),
					},
				)
			obs_logging.reset_context(tokens)
		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app: FastAPI) -> None:
	app.add_middleware(ObservabilityMiddleware)
