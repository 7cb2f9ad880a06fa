"""Request-scoped access to the services wired by the app factory."""

from __future__ import annotations

from fastapi import Request

from feedcore.feeds.services.aggregation import ReviewAggregationService
from feedcore.feeds.services.feed_query import FeedQueryService
from feedcore.feeds.services.feed_writer import FeedWriter


def get_query_service(request: Request) -> FeedQueryService:
	return request.app.state.feed_query


def get_writer(request: Request) -> FeedWriter:
	return request.app.state.feed_writer


def get_review_aggregator(request: Request) -> ReviewAggregationService:
	return request.app.state.review_aggregator
