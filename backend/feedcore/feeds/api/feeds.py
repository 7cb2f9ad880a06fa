"""Feed read endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from feedcore.feeds.api._deps import get_query_service
from feedcore.feeds.api._errors import to_http_error
from feedcore.feeds.domain.exceptions import FeedError
from feedcore.feeds.domain.models import FeedPage
from feedcore.feeds.services.feed_query import FeedQueryService
from feedcore.infra.auth import AuthenticatedUser, get_current_user, get_optional_user

router = APIRouter(tags=["feeds:read"])

_FEED_SORT = "^(hot|new|top|top_24h|top_7d|top_all)$"
_COMMENT_SORT = "^(top|new|old)$"


@router.get("/home", response_model=FeedPage)
async def home_feed_endpoint(
	sort: str = Query(default="hot", pattern=_FEED_SORT),
	page_size: int = Query(default=20, ge=1, le=100),
	cursor: str | None = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: FeedQueryService = Depends(get_query_service),
) -> FeedPage:
	try:
		return await service.home_feed(auth_user.id, sort=sort, page_size=page_size, cursor=cursor)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.get("/communities/{community_id}/feed", response_model=FeedPage)
async def community_feed_endpoint(
	community_id: str,
	sort: str = Query(default="hot", pattern=_FEED_SORT),
	page_size: int = Query(default=20, ge=1, le=100),
	cursor: str | None = Query(default=None),
	auth_user: AuthenticatedUser | None = Depends(get_optional_user),
	service: FeedQueryService = Depends(get_query_service),
) -> FeedPage:
	try:
		return await service.community_feed(
			community_id,
			viewer=auth_user.id if auth_user else None,
			sort=sort,
			page_size=page_size,
			cursor=cursor,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.get("/authors/{author_id}/feed", response_model=FeedPage)
async def author_feed_endpoint(
	author_id: str,
	sort: str = Query(default="new", pattern=_FEED_SORT),
	page_size: int = Query(default=20, ge=1, le=100),
	cursor: str | None = Query(default=None),
	auth_user: AuthenticatedUser | None = Depends(get_optional_user),
	service: FeedQueryService = Depends(get_query_service),
) -> FeedPage:
	try:
		return await service.author_feed(
			author_id,
			viewer=auth_user.id if auth_user else None,
			sort=sort,
			page_size=page_size,
			cursor=cursor,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.get("/posts/{post_id}/comments", response_model=FeedPage)
async def post_comments_endpoint(
	post_id: str,
	sort: str = Query(default="top", pattern=_COMMENT_SORT),
	page_size: int = Query(default=20, ge=1, le=100),
	cursor: str | None = Query(default=None),
	service: FeedQueryService = Depends(get_query_service),
) -> FeedPage:
	try:
		return await service.post_comments(post_id, sort=sort, page_size=page_size, cursor=cursor)
	except FeedError as exc:
		raise to_http_error(exc) from exc
