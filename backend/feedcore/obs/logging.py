"""JSON logging with a per-request feed context.

The request middleware opens a ``RequestLogContext`` for every call. Feed
services annotate it with what the engine did (scope kind, sort order,
partition fan-out, cursor presence, cache outcome, partial results), and the
middleware writes those facts on the single access line it emits when the
request finishes. Any record logged while the context is open also carries
the request id, route and viewer.
"""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from feedcore.settings import settings

_LOGGER_NAME = "feedcore"

# attributes every LogRecord carries; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


@dataclass
class RequestLogContext:
	request_id: str
	route: str
	viewer: Optional[str] = None
	feed: Dict[str, object] = field(default_factory=dict)


_CONTEXT: ContextVar[Optional[RequestLogContext]] = ContextVar("feedcore_request_log", default=None)


def open_request(request_id: str, route: str, *, viewer: Optional[str] = None) -> Token:
	return _CONTEXT.set(RequestLogContext(request_id=request_id, route=route, viewer=viewer))


def close_request(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request() -> Optional[RequestLogContext]:
	return _CONTEXT.get()


def annotate_feed(**fields: object) -> None:
	"""Record feed engine facts on the open request. No-op outside a request.

	The context object is shared with the middleware even when the handler
	runs in a child task, so later annotations overwrite earlier ones.
	"""

	context = _CONTEXT.get()
	if context is None:
		return
	context.feed.update({key: value for key, value in fields.items() if value is not None})


class FeedLogFormatter(logging.Formatter):
	"""One JSON object per record: base fields, request context, then extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (logging api)
		payload: Dict[str, object] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
		}
		context = _CONTEXT.get()
		if context is not None:
			payload["request_id"] = context.request_id
			payload["route"] = context.route
			if context.viewer:
				payload["viewer"] = context.viewer
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key not in _RECORD_ATTRS and key not in payload:
				payload[key] = value
		return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(level: Optional[str] = None) -> logging.Logger:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(FeedLogFormatter())
	root.addHandler(handler)
	root.setLevel(level or settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)


__all__ = [
	"FeedLogFormatter",
	"RequestLogContext",
	"annotate_feed",
	"close_request",
	"configure_logging",
	"current_request",
	"get_logger",
	"open_request",
]
