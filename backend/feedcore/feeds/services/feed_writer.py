"""Write path for posts, comments, votes and reviews.

Every mutation commits to the document store first and then invalidates the
affected cache domain. Invalidation is best effort: a cache fault is logged
and the entry ages out on its TTL.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from feedcore.feeds.domain.exceptions import ForbiddenError, NotFoundError, ValidationError
from feedcore.feeds.domain.models import (
    REVIEW_LABELS,
    CommentItem,
    Community,
    PostItem,
    ReviewComment,
    ReviewItem,
    community_partition,
    post_partition,
)
from feedcore.feeds.domain.ports import ContentStore, MediaStorage
from feedcore.feeds.ranking import scoring
from feedcore.feeds.services.aggregation import review_target_key
from feedcore.infra.cache import CacheDomains, CacheStore, safe_invalidate
from feedcore.obs import metrics as obs_metrics
from feedcore.settings import settings

_LOG = logging.getLogger(__name__)

DELETED_BODY = "[deleted]"
VOTE_VALUES = (1, -1, 0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


def vote_deltas(current: int, value: int) -> Tuple[int, int]:
    """Upvote/downvote counter changes for moving a vote from ``current`` to ``value``."""

    up = down = 0
    if value == 1 and current != 1:
        up = 1
        if current == -1:
            down = -1
    elif value == -1 and current != -1:
        down = 1
        if current == 1:
            up = -1
    elif value == 0 and current != 0:
        if current == 1:
            up = -1
        elif current == -1:
            down = -1
    return up, down


def _media_refs(media: Iterable[Dict[str, Any]]) -> List[str]:
    refs = []
    for descriptor in media:
        ref = descriptor.get("ref") or descriptor.get("path")
        if isinstance(ref, str) and ref:
            refs.append(ref)
    return refs


class FeedWriter:
    """Persists feed content and keeps the read caches honest."""

    def __init__(
        self,
        store: ContentStore,
        *,
        caches: CacheDomains | None = None,
        media: MediaStorage | None = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
        max_comment_depth: int | None = None,
    ) -> None:
        self.store = store
        self.caches = caches
        self.media = media
        self.clock = clock
        self.id_factory = id_factory
        self.max_comment_depth = (
            max_comment_depth if max_comment_depth is not None else settings.comments_max_depth
        )

    # --- posts -----------------------------------------------------------

    async def create_post(
        self,
        author_id: str,
        community_id: str,
        *,
        body: str = "",
        title: str | None = None,
        media: Sequence[Dict[str, Any]] | None = None,
        tags: Sequence[str] | None = None,
        author_nickname: str | None = None,
    ) -> PostItem:
        community = await self._require_community(community_id)
        await self._ensure_can_post(community, author_id)
        if not (body or "").strip() and not media:
            raise ValidationError("empty_post")

        now = self.clock()
        post = PostItem(
            id=self.id_factory(),
            partition_key=community_partition(community.id),
            created_at=now,
            community_id=community.id,
            author_id=author_id,
            author_nickname=author_nickname,
            title=title,
            body=body or "",
            media=list(media or []),
            tags=list(tags or []),
            last_activity_at=now,
            updated_at=now,
        )
        post.hot_score = scoring.hot_score_for(post)
        await self.store.save_post(post)
        community.post_count += 1
        await self.store.save_community(community)

        self._invalidate(self._domain("posts"))
        _LOG.info("feed_writer.post_created", extra={"post_id": post.id, "community_id": community.id})
        return post

    async def update_post(
        self,
        post_id: str,
        user_id: str,
        *,
        body: str | None = None,
        title: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> PostItem:
        post = await self._require_post(post_id)
        if post.author_id != user_id:
            raise ForbiddenError("not_author")
        if body is not None:
            post.body = body
        if title is not None:
            post.title = title
        if tags is not None:
            post.tags = list(tags)
        post.edited = True
        post.updated_at = self.clock()
        await self.store.save_post(post)

        posts_cache = self._domain("posts")
        for prefix in (f"community:{post.community_id}:", f"author:{post.author_id}:", "home:"):
            self._invalidate(posts_cache, prefix=prefix)
        return post

    async def delete_post(self, post_id: str, user_id: str) -> PostItem:
        post = await self._require_post(post_id)
        community = await self._require_community(post.community_id)
        if post.author_id != user_id and not community.can_moderate(user_id):
            raise ForbiddenError("insufficient_permissions")

        refs = _media_refs(post.media)
        post.is_deleted = True
        post.body = DELETED_BODY
        post.media = []
        post.updated_at = self.clock()
        await self.store.save_post(post)
        community.post_count = max(0, community.post_count - 1)
        await self.store.save_community(community)
        self._invalidate(self._domain("posts"))
        _LOG.info("feed_writer.post_deleted", extra={"post_id": post.id, "deleted_by": user_id})

        await self._cleanup_media(post.id, refs)
        return post

    async def _cleanup_media(self, post_id: str, refs: Sequence[str]) -> None:
        # The delete has already committed; failures here never undo it.
        if self.media is None:
            return
        for ref in refs:
            try:
                await self.media.delete_media(ref)
            except Exception:
                obs_metrics.MEDIA_CLEANUP_FAILURES.inc()
                _LOG.warning(
                    "feed_writer.media_cleanup_failed",
                    extra={"post_id": post_id, "media_ref": ref},
                    exc_info=True,
                )

    # --- votes -----------------------------------------------------------

    async def vote_on_post(self, post_id: str, user_id: str, value: int) -> Tuple[PostItem, Optional[int]]:
        self._check_vote(value)
        post = await self._require_post(post_id)
        current = await self.store.get_vote(post.id, user_id)
        up, down = vote_deltas(current, value)
        await self.store.set_vote(post.id, user_id, value)

        now = self.clock()
        post.upvotes = max(0, post.upvotes + up)
        post.downvotes = max(0, post.downvotes + down)
        post.score = post.upvotes - post.downvotes
        post.hot_score = scoring.hot_score_for(post)
        post.trending_score = scoring.compute_trending_score(
            post.upvotes + post.downvotes, now, post.comment_count, now=now
        )
        post.last_activity_at = now
        post.updated_at = now
        await self.store.save_post(post)

        self._invalidate(self._domain("posts"))
        return post, (value or None)

    async def vote_on_comment(
        self, comment_id: str, user_id: str, value: int
    ) -> Tuple[CommentItem, Optional[int]]:
        self._check_vote(value)
        comment = await self._require_comment(comment_id)
        current = await self.store.get_vote(comment.id, user_id)
        up, down = vote_deltas(current, value)
        await self.store.set_vote(comment.id, user_id, value)

        comment.upvotes = max(0, comment.upvotes + up)
        comment.downvotes = max(0, comment.downvotes + down)
        comment.score = comment.upvotes - comment.downvotes
        comment.hot_score = scoring.hot_score_for(comment)
        comment.updated_at = self.clock()
        await self.store.save_comment(comment)

        self._invalidate(self._domain("comments"), prefix=f"postComments:{comment.post_id}:")
        return comment, (value or None)

    @staticmethod
    def _check_vote(value: int) -> None:
        if isinstance(value, bool) or value not in VOTE_VALUES:
            raise ValidationError("invalid_vote")

    # --- comments --------------------------------------------------------

    async def create_comment(
        self,
        post_id: str,
        author_id: str,
        *,
        body: str,
        parent_id: str | None = None,
        author_nickname: str | None = None,
    ) -> CommentItem:
        if not (body or "").strip():
            raise ValidationError("empty_comment")
        post = await self._require_post(post_id)
        community = await self.store.get_community(post.community_id)
        if community is not None:
            await self._ensure_can_post(community, author_id)

        depth = 0
        if parent_id:
            parent = await self.store.get_comment(parent_id)
            if parent is None or parent.is_deleted or parent.post_id != post.id:
                raise NotFoundError("parent_not_found")
            depth = parent.depth + 1
            if depth > self.max_comment_depth:
                raise ValidationError("max_depth_exceeded")

        now = self.clock()
        comment = CommentItem(
            id=self.id_factory(),
            partition_key=post_partition(post.id),
            created_at=now,
            post_id=post.id,
            community_id=post.community_id,
            author_id=author_id,
            author_nickname=author_nickname,
            body=body,
            parent_id=parent_id or None,
            depth=depth,
            updated_at=now,
        )
        comment.hot_score = scoring.hot_score_for(comment)
        await self.store.save_comment(comment)

        post.comment_count += 1
        post.last_activity_at = now
        await self.store.save_post(post)

        self._invalidate(self._domain("comments"))
        return comment

    async def delete_comment(self, comment_id: str, user_id: str) -> Dict[str, Any]:
        """Soft-delete a comment and every reply below it.

        The thread is walked with an explicit worklist so arbitrarily deep
        reply chains never touch the interpreter recursion limit.
        """

        root = await self._require_comment(comment_id)
        allowed = root.author_id == user_id
        if not allowed and root.community_id:
            community = await self.store.get_community(root.community_id)
            allowed = community is not None and community.can_moderate(user_id)
        if not allowed:
            raise ForbiddenError("insufficient_permissions")

        now = self.clock()
        pending = deque([root.id])
        seen: set[str] = set()
        deleted = 0
        while pending:
            current_id = pending.popleft()
            if current_id in seen:
                continue
            seen.add(current_id)
            comment = await self.store.get_comment(current_id)
            if comment is None or comment.is_deleted:
                continue
            pending.extend(await self.store.list_child_comment_ids(comment.id))
            comment.is_deleted = True
            comment.body = DELETED_BODY
            comment.updated_at = now
            await self.store.save_comment(comment)
            deleted += 1

        post = await self.store.get_post(root.post_id)
        if post is not None:
            post.comment_count = max(0, post.comment_count - deleted)
            await self.store.save_post(post)

        self._invalidate(self._domain("comments"), prefix=f"postComments:{root.post_id}:")
        _LOG.info(
            "feed_writer.comment_thread_deleted",
            extra={"comment_id": root.id, "deleted_by": user_id, "replies_deleted": deleted - 1},
        )
        return {"post_id": root.post_id, "deleted": deleted, "replies_deleted": max(0, deleted - 1)}

    # --- reviews ---------------------------------------------------------

    async def create_review(
        self,
        voter_id: str,
        community_id: str,
        *,
        label: str,
        comment: str | None = None,
        target_id: str | None = None,
        target_name: str | None = None,
        target_handle: str | None = None,
        target_location: str | None = None,
    ) -> ReviewItem:
        if label not in REVIEW_LABELS:
            raise ValidationError("invalid_label")
        community = await self._require_community(community_id)
        await self._ensure_can_post(community, voter_id)

        now = self.clock()
        review = ReviewItem(
            id=self.id_factory(),
            partition_key=community_partition(community.id),
            created_at=now,
            community_id=community.id,
            voter_id=voter_id,
            target_id=target_id or None,
            target_name=target_name,
            target_handle=target_handle,
            target_location=target_location,
            label=label,
            comment=comment or None,
            updated_at=now,
        )
        await self.store.save_review(review)
        self._invalidate(self._domain("reviews"))
        return review

    async def vote_on_review(self, review_id: str, user_id: str, label: str) -> ReviewItem:
        if label not in REVIEW_LABELS:
            raise ValidationError("invalid_label")
        review = await self._require_review(review_id)
        await self.store.set_review_label(review.id, user_id, label, review_target_key(review))
        self._invalidate(self._domain("reviews"))
        return review

    async def add_review_comment(
        self,
        review_id: str,
        user_id: str,
        *,
        body: str,
        parent_comment_id: str | None = None,
    ) -> ReviewComment:
        if not (body or "").strip():
            raise ValidationError("empty_comment")
        review = await self._require_review(review_id)
        comment = ReviewComment(
            id=self.id_factory(),
            user_id=user_id,
            body=body.strip(),
            parent_comment_id=parent_comment_id or None,
            created_at=self.clock(),
        )
        await self.store.add_review_comment(review.id, comment)
        self._invalidate(self._domain("reviews"))
        return comment

    # --- helpers ---------------------------------------------------------

    async def _require_community(self, community_id: str) -> Community:
        community = await self.store.get_community(community_id)
        if community is None:
            raise NotFoundError("community_not_found")
        return community

    async def _require_post(self, post_id: str) -> PostItem:
        post = await self.store.get_post(post_id)
        if post is None or post.is_deleted:
            raise NotFoundError("post_not_found")
        return post

    async def _require_comment(self, comment_id: str) -> CommentItem:
        comment = await self.store.get_comment(comment_id)
        if comment is None or comment.is_deleted:
            raise NotFoundError("comment_not_found")
        return comment

    async def _require_review(self, review_id: str) -> ReviewItem:
        review = await self.store.get_review(review_id)
        if review is None or review.is_deleted:
            raise NotFoundError("review_not_found")
        return review

    async def _ensure_can_post(self, community: Community, user_id: str) -> None:
        if not community.is_private or community.can_moderate(user_id):
            return
        if not await self.store.is_member(community.id, user_id):
            raise ForbiddenError("membership_required")

    def _domain(self, name: str) -> CacheStore | None:
        if self.caches is None or name not in self.caches:
            return None
        return self.caches[name]

    @staticmethod
    def _invalidate(store: CacheStore | None, *, prefix: str | None = None) -> None:
        safe_invalidate(store, prefix=prefix)


__all__ = ["DELETED_BODY", "FeedWriter", "vote_deltas"]
