"""Feed query helpers for the feed APIs."""

from __future__ import annotations

import logging
from typing import List

from feedcore.feeds.domain.exceptions import AggregationError, ForbiddenError, NotFoundError, ValidationError
from feedcore.feeds.domain.models import (
    Community,
    FeedPage,
    ReviewComment,
    ReviewItem,
    author_partition,
    community_partition,
    partition_id,
    post_partition,
)
from feedcore.feeds.domain.ports import ContentStore, IdentityResolver, ReviewSubRecords
from feedcore.feeds.ranking import scoring
from feedcore.feeds.services.merge import ItemFilter, MergePaginateEngine
from feedcore.settings import settings

_LOG = logging.getLogger(__name__)


class FeedQueryService:
    """Resolves home, community, author and comment feeds through the merge engine."""

    def __init__(
        self,
        posts: MergePaginateEngine,
        comments: MergePaginateEngine,
        identities: IdentityResolver,
        store: ContentStore,
        sub_records: ReviewSubRecords | None = None,
    ) -> None:
        self.posts = posts
        self.comments = comments
        self.identities = identities
        self.store = store
        self.sub_records = sub_records

    async def home_feed(
        self,
        identity: str,
        *,
        sort: str = scoring.SORT_HOT,
        page_size: int | None = None,
        cursor: str | None = None,
    ) -> FeedPage:
        try:
            partitions = await self.identities.resolve_feed_partitions(identity)
        except Exception as exc:
            _LOG.exception("feed_query.resolve_partitions_failed", extra={"identity": identity})
            raise AggregationError() from exc
        return await self.posts.paginate(
            list(partitions),
            sort=self._feed_sort(sort),
            page_size=page_size or settings.feed_page_size_default,
            cursor=cursor,
            scope=f"home:{identity}",
            item_filter=await self._visible_to(identity),
        )

    async def community_feed(
        self,
        community_id: str,
        *,
        viewer: str | None = None,
        sort: str = scoring.SORT_HOT,
        page_size: int | None = None,
        cursor: str | None = None,
    ) -> FeedPage:
        community = await self._require_community(community_id)
        if community.is_private and not await self._can_read(community, viewer):
            raise ForbiddenError("community_private")
        return await self.posts.paginate(
            [community_partition(community.id)],
            sort=self._feed_sort(sort),
            page_size=page_size or settings.feed_page_size_default,
            cursor=cursor,
            scope=f"community:{community.id}",
        )

    async def author_feed(
        self,
        author_id: str,
        *,
        viewer: str | None = None,
        sort: str = scoring.SORT_NEW,
        page_size: int | None = None,
        cursor: str | None = None,
    ) -> FeedPage:
        # author partitions span communities, so the page depends on who is looking
        return await self.posts.paginate(
            [author_partition(author_id)],
            sort=self._feed_sort(sort),
            page_size=page_size or settings.feed_page_size_default,
            cursor=cursor,
            scope=f"author:{author_id}",
            filters={"viewer": viewer or "-"},
            item_filter=await self._visible_to(viewer),
        )

    async def post_comments(
        self,
        post_id: str,
        *,
        sort: str = "top",
        page_size: int | None = None,
        cursor: str | None = None,
    ) -> FeedPage:
        post = await self.store.get_post(post_id)
        if post is None or post.is_deleted:
            raise NotFoundError("post_not_found")
        if sort not in scoring.COMMENT_SORTS:
            raise ValidationError("invalid_sort")
        return await self.comments.paginate(
            [post_partition(post.id)],
            sort=sort,
            page_size=page_size or settings.feed_page_size_default,
            cursor=cursor,
            scope=f"postComments:{post.id}",
        )

    async def get_review(self, review_id: str) -> ReviewItem:
        review = await self.store.get_review(review_id)
        if review is None or review.is_deleted:
            raise NotFoundError("review_not_found")
        return review

    async def list_review_comments(self, review_id: str, *, limit: int = 50) -> List[ReviewComment]:
        review = await self.get_review(review_id)
        if self.sub_records is None:
            return []
        return list(await self.sub_records.list_comments(review.id, limit=limit))

    async def _require_community(self, community_id: str) -> Community:
        community = await self.store.get_community(community_id)
        if community is None:
            raise NotFoundError("community_not_found")
        return community

    async def _can_read(self, community: Community, viewer: str | None) -> bool:
        if viewer is None:
            return False
        if community.can_moderate(viewer):
            return True
        return await self.store.is_member(community.id, viewer)

    async def _visible_to(self, viewer: str | None) -> ItemFilter | None:
        """Filter dropping posts of private communities ``viewer`` cannot read."""

        private = set(await self.store.list_private_community_ids())
        if not private:
            return None
        readable: set[str] = set()
        if viewer is not None:
            accessible = await self.identities.resolve_accessible_partitions(viewer)
            readable = {partition_id(key) for key in accessible}
        hidden = private - readable
        if not hidden:
            return None
        return lambda item: getattr(item, "community_id", None) not in hidden

    @staticmethod
    def _feed_sort(sort: str) -> str:
        # comment-only orders are not valid for post feeds
        if sort == scoring.SORT_OLD:
            raise ValidationError("invalid_sort")
        return sort


__all__ = ["FeedQueryService"]
