"""Review aggregation and review write endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from feedcore.feeds.api._deps import get_query_service, get_review_aggregator, get_writer
from feedcore.feeds.api._errors import to_http_error
from feedcore.feeds.domain.exceptions import FeedError
from feedcore.feeds.domain.models import AggregationWindow, ReviewComment, ReviewItem
from feedcore.feeds.schemas import dto
from feedcore.feeds.services.aggregation import ReviewAggregationService
from feedcore.feeds.services.feed_query import FeedQueryService
from feedcore.feeds.services.feed_writer import FeedWriter
from feedcore.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/reviews", tags=["feeds:reviews"])


@router.get("/aggregate", response_model=AggregationWindow)
async def aggregate_reviews_endpoint(
	limit: int = Query(default=25, ge=1, le=100),
	cursor: str | None = Query(default=None),
	before_ts: datetime | None = Query(default=None),
	include_acted: bool = Query(default=False),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	aggregator: ReviewAggregationService = Depends(get_review_aggregator),
) -> AggregationWindow:
	try:
		return await aggregator.aggregate(
			auth_user.id,
			limit=limit,
			cursor=cursor,
			before=before_ts,
			exclude_acted=not include_acted,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.post("", response_model=ReviewItem, status_code=201)
async def create_review_endpoint(
	payload: dto.ReviewCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> ReviewItem:
	try:
		return await writer.create_review(
			auth_user.id,
			payload.community_id,
			label=payload.label,
			comment=payload.comment,
			target_id=payload.target_id,
			target_name=payload.target_name,
			target_handle=payload.target_handle,
			target_location=payload.target_location,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.get("/{review_id}", response_model=ReviewItem)
async def get_review_endpoint(
	review_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: FeedQueryService = Depends(get_query_service),
) -> ReviewItem:
	try:
		return await service.get_review(review_id)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.post("/{review_id}/vote", response_model=dto.ReviewVoteResponse)
async def vote_review_endpoint(
	review_id: str,
	payload: dto.ReviewVoteRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> dto.ReviewVoteResponse:
	try:
		review = await writer.vote_on_review(review_id, auth_user.id, payload.label)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.ReviewVoteResponse(review_id=review.id, label=payload.label)


@router.get("/{review_id}/comments", response_model=dto.ReviewCommentListResponse)
async def list_review_comments_endpoint(
	review_id: str,
	limit: int = Query(default=50, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: FeedQueryService = Depends(get_query_service),
) -> dto.ReviewCommentListResponse:
	try:
		items = await service.list_review_comments(review_id, limit=limit)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.ReviewCommentListResponse(items=items)


@router.post("/{review_id}/comments", response_model=ReviewComment, status_code=201)
async def add_review_comment_endpoint(
	review_id: str,
	payload: dto.ReviewCommentCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> ReviewComment:
	try:
		return await writer.add_review_comment(
			review_id,
			auth_user.id,
			body=payload.body,
			parent_comment_id=payload.parent_comment_id,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc
