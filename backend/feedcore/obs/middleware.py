"""Request middleware: request ids, the feed access line and HTTP metrics."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from feedcore.obs import logging as obs_logging
from feedcore.obs import metrics
from feedcore.settings import settings

REQUEST_ID_HEADER = "X-Request-Id"


def _route_template(request: Request) -> str:
	# set by the router once a path matched; unmatched paths fall back to the raw path
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class RequestContextMiddleware(BaseHTTPMiddleware):
	"""Opens the request log context and emits one ``feed.request`` line per call."""

	def __init__(self, app) -> None:
		super().__init__(app)
		self._logger = obs_logging.get_logger("feedcore.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		if not settings.obs_enabled:
			response = await call_next(request)
			response.headers[REQUEST_ID_HEADER] = request_id
			return response

		token = obs_logging.open_request(request_id, request.url.path, viewer=request.headers.get("X-User-Id"))
		start = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception("feed.request_failed", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - start
			route = _route_template(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			context = obs_logging.current_request()
			if context is not None:
				context.route = route
			self._logger.info(
				"feed.request",
				extra={
					"method": request.method,
					"status": status_code,
					"latency_ms": round(elapsed * 1000, 3),
					**(context.feed if context is not None else {}),
				},
			)
			obs_logging.close_request(token)

		response.headers[REQUEST_ID_HEADER] = request_id
		return response


def install(app) -> None:
	app.add_middleware(RequestContextMiddleware)
