"""Pydantic schemas for the feed API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from feedcore.feeds.domain.models import ReviewComment

_LABEL_PATTERN = "^(red|green|unknown)$"


class PostCreateRequest(BaseModel):
	community_id: str = Field(..., min_length=1)
	title: Optional[str] = Field(default=None, max_length=300)
	body: str = Field(default="", max_length=40000)
	media: List[Dict[str, Any]] = Field(default_factory=list, max_length=10)
	tags: List[str] = Field(default_factory=list, max_length=20)


class PostUpdateRequest(BaseModel):
	title: Optional[str] = Field(default=None, max_length=300)
	body: Optional[str] = Field(default=None, max_length=40000)
	tags: Optional[List[str]] = Field(default=None, max_length=20)


class VoteRequest(BaseModel):
	value: int = Field(..., ge=-1, le=1)


class VoteResponse(BaseModel):
	id: str
	upvotes: int
	downvotes: int
	score: int
	hot_score: float
	user_vote: Optional[int] = None


class CommentCreateRequest(BaseModel):
	body: str = Field(..., min_length=1, max_length=10000)
	parent_id: Optional[str] = None


class CommentDeleteResponse(BaseModel):
	post_id: str
	deleted: int
	replies_deleted: int


class ReviewCreateRequest(BaseModel):
	community_id: str = Field(..., min_length=1)
	label: str = Field(..., pattern=_LABEL_PATTERN)
	comment: Optional[str] = Field(default=None, max_length=4000)
	target_id: Optional[str] = Field(default=None, max_length=200)
	target_name: Optional[str] = Field(default=None, max_length=200)
	target_handle: Optional[str] = Field(default=None, max_length=200)
	target_location: Optional[str] = Field(default=None, max_length=200)


class ReviewVoteRequest(BaseModel):
	label: str = Field(..., pattern=_LABEL_PATTERN)


class ReviewVoteResponse(BaseModel):
	review_id: str
	label: str


class ReviewCommentCreateRequest(BaseModel):
	body: str = Field(..., min_length=1, max_length=4000)
	parent_comment_id: Optional[str] = None


class ReviewCommentListResponse(BaseModel):
	items: List[ReviewComment]
