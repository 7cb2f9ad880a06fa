"""Custom exceptions for feed services."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class FeedError(Exception):
	"""Base class for feed related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "feed_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(FeedError):
	"""Raised when the requested root entity is absent."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(FeedError):
	"""Raised when the caller lacks permission for a write."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ValidationError(FeedError):
	"""Raised for validation errors not covered by FastAPI schema validation."""

	status_code = _HTTP_422
	detail = "validation_error"


class AggregationError(FeedError):
	"""Raised when every source of a merge or aggregation failed."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "aggregation_failed"
