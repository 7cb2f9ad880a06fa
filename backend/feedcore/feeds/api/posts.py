"""Post, comment and vote write endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from feedcore.feeds.api._deps import get_writer
from feedcore.feeds.api._errors import to_http_error
from feedcore.feeds.domain.exceptions import FeedError
from feedcore.feeds.domain.models import CommentItem, PostItem
from feedcore.feeds.schemas import dto
from feedcore.feeds.services.feed_writer import FeedWriter
from feedcore.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["feeds:write"])


@router.post("/posts", response_model=PostItem, status_code=201)
async def create_post_endpoint(
	payload: dto.PostCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> PostItem:
	try:
		return await writer.create_post(
			auth_user.id,
			payload.community_id,
			body=payload.body,
			title=payload.title,
			media=payload.media,
			tags=payload.tags,
			author_nickname=auth_user.display_name,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.patch("/posts/{post_id}", response_model=PostItem)
async def update_post_endpoint(
	post_id: str,
	payload: dto.PostUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> PostItem:
	try:
		return await writer.update_post(
			post_id,
			auth_user.id,
			body=payload.body,
			title=payload.title,
			tags=payload.tags,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/posts/{post_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_post_endpoint(
	post_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> None:
	try:
		await writer.delete_post(post_id, auth_user.id)
		return None
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.post("/posts/{post_id}/vote", response_model=dto.VoteResponse)
async def vote_post_endpoint(
	post_id: str,
	payload: dto.VoteRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> dto.VoteResponse:
	try:
		post, user_vote = await writer.vote_on_post(post_id, auth_user.id, payload.value)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.VoteResponse(
		id=post.id,
		upvotes=post.upvotes,
		downvotes=post.downvotes,
		score=post.score,
		hot_score=post.hot_score,
		user_vote=user_vote,
	)


@router.post("/posts/{post_id}/comments", response_model=CommentItem, status_code=201)
async def create_comment_endpoint(
	post_id: str,
	payload: dto.CommentCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> CommentItem:
	try:
		return await writer.create_comment(
			post_id,
			auth_user.id,
			body=payload.body,
			parent_id=payload.parent_id,
			author_nickname=auth_user.display_name,
		)
	except FeedError as exc:
		raise to_http_error(exc) from exc


@router.post("/comments/{comment_id}/vote", response_model=dto.VoteResponse)
async def vote_comment_endpoint(
	comment_id: str,
	payload: dto.VoteRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> dto.VoteResponse:
	try:
		comment, user_vote = await writer.vote_on_comment(comment_id, auth_user.id, payload.value)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.VoteResponse(
		id=comment.id,
		upvotes=comment.upvotes,
		downvotes=comment.downvotes,
		score=comment.score,
		hot_score=comment.hot_score,
		user_vote=user_vote,
	)


@router.delete("/comments/{comment_id}", response_model=dto.CommentDeleteResponse)
async def delete_comment_endpoint(
	comment_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	writer: FeedWriter = Depends(get_writer),
) -> dto.CommentDeleteResponse:
	try:
		result = await writer.delete_comment(comment_id, auth_user.id)
	except FeedError as exc:
		raise to_http_error(exc) from exc
	return dto.CommentDeleteResponse(**result)
