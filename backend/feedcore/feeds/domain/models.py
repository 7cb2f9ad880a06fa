"""Domain models for rankable feed content and derived result windows."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

REVIEW_LABELS = ("red", "green", "unknown")


def community_partition(community_id: str) -> str:
	return f"community:{community_id}"


def author_partition(author_id: str) -> str:
	return f"author:{author_id}"


def post_partition(post_id: str) -> str:
	return f"post:{post_id}"


def partition_id(partition_key: str) -> str:
	"""Strip the partition namespace, ``community:abc`` -> ``abc``."""

	_, _, raw = partition_key.partition(":")
	return raw or partition_key


class RankableItem(BaseModel):
	"""Minimal interface shared by every item the merge engine orders.

	``score`` is kept equal to ``upvotes - downvotes``; ``hot_score`` is the
	value last written by a vote mutation and is not recomputed on read.
	"""

	id: str
	partition_key: str
	created_at: datetime
	upvotes: int = 0
	downvotes: int = 0
	score: int = 0
	hot_score: float = 0.0
	is_deleted: bool = False

	model_config = ConfigDict(from_attributes=True)

	@model_validator(mode="after")
	def _net_score(self):
		self.score = self.upvotes - self.downvotes
		return self


class PostItem(RankableItem):
	"""A post scoped to a community and authored by a user."""

	kind: Literal["post"] = "post"
	community_id: str
	author_id: str
	author_nickname: Optional[str] = None
	title: Optional[str] = None
	body: str = ""
	media: List[Dict[str, Any]] = Field(default_factory=list)
	tags: List[str] = Field(default_factory=list)
	comment_count: int = 0
	trending_score: float = 0.0
	edited: bool = False
	last_activity_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None


class CommentItem(RankableItem):
	"""A comment on a post; ``parent_id`` links replies into a thread."""

	kind: Literal["comment"] = "comment"
	post_id: str
	community_id: Optional[str] = None
	author_id: str
	author_nickname: Optional[str] = None
	body: str
	parent_id: Optional[str] = None
	depth: int = 0
	edited: bool = False
	updated_at: Optional[datetime] = None


class ReviewItem(RankableItem):
	"""A labelled review record posted into a community.

	The reviewed entity is identified by ``target_id`` when the client supplied
	one, otherwise by its descriptive fields.
	"""

	kind: Literal["review"] = "review"
	community_id: str
	voter_id: Optional[str] = None
	target_id: Optional[str] = None
	target_name: Optional[str] = None
	target_handle: Optional[str] = None
	target_location: Optional[str] = None
	label: str = "unknown"
	comment: Optional[str] = None
	updated_at: Optional[datetime] = None


FeedItem = Annotated[Union[PostItem, CommentItem, ReviewItem], Field(discriminator="kind")]


class Cursor(BaseModel):
	"""Resume point: last-served item identity plus its sort key."""

	id: str
	sort_key: float
	sort: Optional[str] = None


class Pagination(BaseModel):
	page_size: int
	has_more: bool = False
	next_cursor: Optional[str] = None


class FeedPage(BaseModel):
	"""A merged, sorted and sliced window over one or more partitions."""

	items: List[FeedItem] = Field(default_factory=list)
	pagination: Pagination
	partial: bool = False


class DisplayMetadata(BaseModel):
	display_name: Optional[str] = None
	avatar_ref: Optional[str] = None


class PartitionMetadata(BaseModel):
	display_name: Optional[str] = None


class ReviewComment(BaseModel):
	id: str
	user_id: str
	body: str
	parent_comment_id: Optional[str] = None
	created_at: datetime


class AggregatedReview(BaseModel):
	"""A review decorated with page-scoped metadata and sub-records."""

	id: str
	community_id: str
	community_name: Optional[str] = None
	voter_id: Optional[str] = None
	voter_nickname: Optional[str] = None
	voter_avatar: Optional[str] = None
	target_id: Optional[str] = None
	target_key: str
	label: str
	comment: Optional[str] = None
	created_at: datetime
	votes: Dict[str, int] = Field(default_factory=dict)
	comments: List[ReviewComment] = Field(default_factory=list)


def empty_label_counts() -> Dict[str, int]:
	counts = {label: 0 for label in REVIEW_LABELS}
	counts["total"] = 0
	return counts


class AggregationWindow(BaseModel):
	"""Per-request review aggregation result; derived, never persisted."""

	items: List[AggregatedReview] = Field(default_factory=list)
	counts: Dict[str, int] = Field(default_factory=empty_label_counts)
	vote_counts: Dict[str, int] = Field(default_factory=empty_label_counts)
	pagination: Pagination
	partial: bool = False


class AccessiblePartitionSet(BaseModel):
	identity: str
	partition_keys: List[str] = Field(default_factory=list)

	def is_empty(self) -> bool:
		return not self.partition_keys


class Community(BaseModel):
	id: str
	name: str
	slug: Optional[str] = None
	owner_id: str
	mod_ids: List[str] = Field(default_factory=list)
	is_private: bool = False
	post_count: int = 0

	def can_moderate(self, user_id: str) -> bool:
		return user_id == self.owner_id or user_id in self.mod_ids


__all__ = [
	"AccessiblePartitionSet",
	"AggregatedReview",
	"AggregationWindow",
	"CommentItem",
	"Community",
	"Cursor",
	"DisplayMetadata",
	"FeedItem",
	"FeedPage",
	"Pagination",
	"PartitionMetadata",
	"PostItem",
	"REVIEW_LABELS",
	"RankableItem",
	"ReviewComment",
	"ReviewItem",
	"author_partition",
	"community_partition",
	"empty_label_counts",
	"partition_id",
	"post_partition",
]
