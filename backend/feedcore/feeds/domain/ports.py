"""Collaborator contracts consumed by the feed core.

The backing document store, identity graph, vote sub-records and media
storage live outside this package; services only see these protocols.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Protocol, Sequence

from feedcore.feeds.domain.models import (
	CommentItem,
	Community,
	DisplayMetadata,
	PartitionMetadata,
	PostItem,
	RankableItem,
	ReviewComment,
	ReviewItem,
)


class PartitionFetcher(Protocol):
	async def fetch(
		self,
		partition_key: str,
		*,
		limit: int,
		before: Optional[datetime] = None,
	) -> Sequence[RankableItem]:
		"""Return at most ``limit`` items of one partition in no particular order.

		``before`` keeps only items created strictly before that instant. An
		empty or unknown partition yields an empty sequence.
		"""
		...


class IdentityResolver(Protocol):
	async def resolve_accessible_partitions(self, identity: str) -> Sequence[str]:
		"""Communities the identity belongs to, owns or moderates."""
		...

	async def resolve_feed_partitions(self, identity: str) -> Sequence[str]:
		"""Joined communities plus followed authors for the home feed."""
		...


class VoteLookup(Protocol):
	async def has_acted(self, target_key: str, identity: str) -> bool:
		...

	async def get_vote_tally(self, item_id: str) -> Dict[str, int]:
		...


class MetadataProvider(Protocol):
	async def get_display_metadata(self, identity_id: str) -> Optional[DisplayMetadata]:
		...

	async def get_partition_metadata(self, partition_key: str) -> Optional[PartitionMetadata]:
		...


class ReviewSubRecords(Protocol):
	async def list_comments(self, review_id: str, *, limit: int) -> Sequence[ReviewComment]:
		...


class ContentStore(Protocol):
	"""Document operations used by the feed writer and the read services."""

	async def get_community(self, community_id: str) -> Optional[Community]:
		...

	async def save_community(self, community: Community) -> None:
		...

	async def is_member(self, community_id: str, user_id: str) -> bool:
		...

	async def list_private_community_ids(self) -> Sequence[str]:
		...

	async def get_post(self, post_id: str) -> Optional[PostItem]:
		...

	async def save_post(self, post: PostItem) -> None:
		...

	async def get_comment(self, comment_id: str) -> Optional[CommentItem]:
		...

	async def save_comment(self, comment: CommentItem) -> None:
		...

	async def list_child_comment_ids(self, comment_id: str) -> Sequence[str]:
		...

	async def get_vote(self, subject_id: str, user_id: str) -> int:
		...

	async def set_vote(self, subject_id: str, user_id: str, value: int) -> None:
		"""Persist a vote; ``value == 0`` removes it."""
		...

	async def get_review(self, review_id: str) -> Optional[ReviewItem]:
		...

	async def save_review(self, review: ReviewItem) -> None:
		...

	async def set_review_label(self, review_id: str, user_id: str, label: str, target_key: str) -> None:
		...

	async def add_review_comment(self, review_id: str, comment: ReviewComment) -> None:
		...


class MediaStorage(Protocol):
	async def delete_media(self, ref: str) -> None:
		...


__all__ = [
	"ContentStore",
	"IdentityResolver",
	"MediaStorage",
	"MetadataProvider",
	"PartitionFetcher",
	"ReviewSubRecords",
	"VoteLookup",
]
