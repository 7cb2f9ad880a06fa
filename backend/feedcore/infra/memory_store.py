"""In-memory document store implementing every feed collaborator port.

Behaves like the production document store without composite indexes:
partition queries match by equality and return the most recent bounded
subset in storage order, never a sorted one. Used by the development app
wiring and the test suite.
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set, Tuple

from feedcore.feeds.domain.models import (
    CommentItem,
    Community,
    DisplayMetadata,
    PartitionMetadata,
    PostItem,
    RankableItem,
    ReviewComment,
    ReviewItem,
    author_partition,
    community_partition,
    partition_id,
)

_PARTITION_FIELDS = {
    "community": "community_id",
    "author": "author_id",
    "post": "post_id",
}


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class CollectionFetcher:
    """``PartitionFetcher`` over one collection of the store."""

    def __init__(self, documents: Dict[str, RankableItem]) -> None:
        self._documents = documents

    async def fetch(
        self,
        partition_key: str,
        *,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[RankableItem]:
        namespace, _, value = partition_key.partition(":")
        field = _PARTITION_FIELDS.get(namespace)
        if field is None or not value:
            return []
        rows = [
            (position, document)
            for position, document in enumerate(self._documents.values())
            if getattr(document, field, None) == value
            and (before is None or _aware(document.created_at) < _aware(before))
        ]
        newest = heapq.nlargest(limit, rows, key=lambda row: _aware(row[1].created_at))
        # the window is the newest ``limit`` rows, handed back in storage order
        return [document for _, document in sorted(newest, key=lambda row: row[0])]


class InMemoryDocumentStore:
    """Process-local store for communities, posts, comments and reviews."""

    def __init__(self) -> None:
        self.communities: Dict[str, Community] = {}
        self.members: Dict[str, Set[str]] = defaultdict(set)
        self.follows: Dict[str, Set[str]] = defaultdict(set)
        self.users: Dict[str, DisplayMetadata] = {}
        self.posts: Dict[str, PostItem] = {}
        self.comments: Dict[str, CommentItem] = {}
        self.reviews: Dict[str, ReviewItem] = {}
        self.votes: Dict[Tuple[str, str], int] = {}
        self.review_labels: Dict[str, Dict[str, str]] = defaultdict(dict)
        self.acted_targets: Dict[str, Set[str]] = defaultdict(set)
        self.review_comments: Dict[str, List[ReviewComment]] = defaultdict(list)
        self.deleted_media: List[str] = []

        self.post_fetcher = CollectionFetcher(self.posts)  # type: ignore[arg-type]
        self.comment_fetcher = CollectionFetcher(self.comments)  # type: ignore[arg-type]
        self.review_fetcher = CollectionFetcher(self.reviews)  # type: ignore[arg-type]

    # --- seeding helpers -------------------------------------------------

    def add_user(self, user_id: str, *, display_name: str | None = None, avatar_ref: str | None = None) -> None:
        self.users[user_id] = DisplayMetadata(display_name=display_name, avatar_ref=avatar_ref)

    def add_member(self, community_id: str, user_id: str) -> None:
        self.members[community_id].add(user_id)

    def follow(self, user_id: str, author_id: str) -> None:
        self.follows[user_id].add(author_id)

    # --- IdentityResolver ------------------------------------------------

    def _community_ids_for(self, identity: str) -> List[str]:
        joined = {community_id for community_id, users in self.members.items() if identity in users}
        for community in self.communities.values():
            if community.can_moderate(identity):
                joined.add(community.id)
        return sorted(joined)

    async def resolve_accessible_partitions(self, identity: str) -> List[str]:
        return [community_partition(community_id) for community_id in self._community_ids_for(identity)]

    async def resolve_feed_partitions(self, identity: str) -> List[str]:
        partitions = await self.resolve_accessible_partitions(identity)
        partitions.extend(author_partition(author_id) for author_id in sorted(self.follows.get(identity, ())))
        return partitions

    # --- VoteLookup ------------------------------------------------------

    async def has_acted(self, target_key: str, identity: str) -> bool:
        return identity in self.acted_targets.get(target_key, ())

    async def get_vote_tally(self, item_id: str) -> Dict[str, int]:
        tally: Dict[str, int] = defaultdict(int)
        for label in self.review_labels.get(item_id, {}).values():
            tally[label] += 1
        return dict(tally)

    def mark_acted(self, target_key: str, identity: str) -> None:
        self.acted_targets[target_key].add(identity)

    # --- MetadataProvider ------------------------------------------------

    async def get_display_metadata(self, identity_id: str) -> Optional[DisplayMetadata]:
        return self.users.get(identity_id)

    async def get_partition_metadata(self, partition_key: str) -> Optional[PartitionMetadata]:
        community = self.communities.get(partition_id(partition_key))
        if community is None:
            return None
        return PartitionMetadata(display_name=community.name)

    # --- ReviewSubRecords ------------------------------------------------

    async def list_comments(self, review_id: str, *, limit: int) -> List[ReviewComment]:
        thread = sorted(self.review_comments.get(review_id, ()), key=lambda row: (row.created_at, row.id))
        return thread[:limit]

    # --- ContentStore ----------------------------------------------------

    async def get_community(self, community_id: str) -> Optional[Community]:
        return self.communities.get(community_id)

    async def save_community(self, community: Community) -> None:
        self.communities[community.id] = community

    async def is_member(self, community_id: str, user_id: str) -> bool:
        return user_id in self.members.get(community_id, ())

    async def list_private_community_ids(self) -> List[str]:
        return sorted(community.id for community in self.communities.values() if community.is_private)

    async def get_post(self, post_id: str) -> Optional[PostItem]:
        return self.posts.get(post_id)

    async def save_post(self, post: PostItem) -> None:
        self.posts[post.id] = post

    async def get_comment(self, comment_id: str) -> Optional[CommentItem]:
        return self.comments.get(comment_id)

    async def save_comment(self, comment: CommentItem) -> None:
        self.comments[comment.id] = comment

    async def list_child_comment_ids(self, comment_id: str) -> Sequence[str]:
        return [
            comment.id
            for comment in self.comments.values()
            if comment.parent_id == comment_id and not comment.is_deleted
        ]

    async def get_vote(self, subject_id: str, user_id: str) -> int:
        return self.votes.get((subject_id, user_id), 0)

    async def set_vote(self, subject_id: str, user_id: str, value: int) -> None:
        if value == 0:
            self.votes.pop((subject_id, user_id), None)
        else:
            self.votes[(subject_id, user_id)] = value

    async def get_review(self, review_id: str) -> Optional[ReviewItem]:
        return self.reviews.get(review_id)

    async def save_review(self, review: ReviewItem) -> None:
        self.reviews[review.id] = review

    async def set_review_label(self, review_id: str, user_id: str, label: str, target_key: str) -> None:
        self.review_labels[review_id][user_id] = label
        self.mark_acted(target_key, user_id)

    async def add_review_comment(self, review_id: str, comment: ReviewComment) -> None:
        self.review_comments[review_id].append(comment)

    # --- MediaStorage ----------------------------------------------------

    async def delete_media(self, ref: str) -> None:
        self.deleted_media.append(ref)


__all__ = ["CollectionFetcher", "InMemoryDocumentStore"]
