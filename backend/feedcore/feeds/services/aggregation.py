"""Cross-community review aggregation.

Reviews are merged by recency across every community the viewer can read,
minus the targets the viewer already labelled. Only the sliced page is
enriched with display metadata, vote tallies and comments, so enrichment
cost follows ``limit`` rather than the fetched window size.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import datetime, timezone
from time import perf_counter
from typing import Dict, List, Optional, Sequence, Tuple

from feedcore.feeds.domain.exceptions import AggregationError, ValidationError
from feedcore.feeds.domain.models import (
    REVIEW_LABELS,
    AccessiblePartitionSet,
    AggregatedReview,
    AggregationWindow,
    DisplayMetadata,
    Pagination,
    PartitionMetadata,
    RankableItem,
    ReviewComment,
    ReviewItem,
    empty_label_counts,
)
from feedcore.feeds.domain.ports import IdentityResolver, MetadataProvider, ReviewSubRecords, VoteLookup
from feedcore.feeds.ranking import scoring
from feedcore.feeds.services.cursor import decode_cursor, encode_cursor
from feedcore.feeds.services.merge import MergePaginateEngine
from feedcore.infra.cache import CacheStore, safe_get, safe_set
from feedcore.obs import logging as obs_logging
from feedcore.obs import metrics as obs_metrics
from feedcore.settings import settings

_LOG = logging.getLogger(__name__)


def normalise_label(label: Optional[str]) -> str:
    return label if label in ("red", "green") else "unknown"


def review_target_key(review: ReviewItem) -> str:
    """Stable identity of the reviewed entity.

    Explicit ``target_id`` wins; otherwise the normalised descriptive fields
    are hashed. A review with neither only identifies itself.
    """

    if review.target_id and review.target_id.strip():
        return f"id:{review.target_id.strip()}"
    fields = (review.target_name, review.target_handle, review.target_location)
    if any(value and value.strip() for value in fields):
        normalised = "|".join(" ".join((value or "").lower().split()) for value in fields)
        return f"desc:{hashlib.sha1(normalised.encode('utf-8')).hexdigest()[:20]}"
    return f"review:{review.id}"


def _tally_labels(tally: Dict[str, int], into: Dict[str, int]) -> None:
    for label, count in tally.items():
        value = max(0, int(count or 0))
        into[normalise_label(label)] += value
        into["total"] += value


class ReviewAggregationService:
    """Builds per-request review windows across accessible communities."""

    def __init__(
        self,
        engine: MergePaginateEngine,
        identities: IdentityResolver,
        votes: VoteLookup,
        metadata: MetadataProvider,
        sub_records: ReviewSubRecords,
        *,
        cache: CacheStore | None = None,
        cache_ttl: float | None = None,
        comments_per_item: int | None = None,
        max_limit: int | None = None,
    ) -> None:
        self.engine = engine
        self.identities = identities
        self.votes = votes
        self.metadata = metadata
        self.sub_records = sub_records
        self.cache = cache
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.reviews_cache_ttl_seconds
        self.comments_per_item = (
            comments_per_item if comments_per_item is not None else settings.reviews_comments_per_item
        )
        self.max_limit = max_limit or settings.feed_page_size_max

    async def aggregate(
        self,
        identity: str,
        *,
        limit: int | None = None,
        cursor: str | None = None,
        before: datetime | None = None,
        exclude_acted: bool = True,
    ) -> AggregationWindow:
        limit = settings.reviews_limit_default if limit is None else limit
        if limit < 1 or limit > self.max_limit:
            raise ValidationError("invalid_limit")

        decoded = decode_cursor(cursor, sort=scoring.SORT_NEW)
        if before is not None and before.tzinfo is None:
            before = before.replace(tzinfo=timezone.utc)
        bound_token = cursor if decoded else (before.isoformat() if before else "none")
        obs_logging.annotate_feed(feed_scope="reviews", feed_sort=scoring.SORT_NEW, feed_cursor=decoded is not None)
        cache_key = f"agg:{identity}:{limit}:{bound_token}:{'excl' if exclude_acted else 'all'}"
        cached = safe_get(self.cache, cache_key)
        if isinstance(cached, AggregationWindow):
            obs_logging.annotate_feed(feed_cache="hit", feed_items=len(cached.items))
            return cached

        start = perf_counter()
        try:
            accessible = AccessiblePartitionSet(
                identity=identity,
                partition_keys=sorted(set(await self.identities.resolve_accessible_partitions(identity))),
            )
        except Exception as exc:
            _LOG.exception("reviews.resolve_partitions_failed", extra={"identity": identity})
            raise AggregationError() from exc
        obs_logging.annotate_feed(feed_partitions=len(accessible.partition_keys))
        if accessible.is_empty():
            return AggregationWindow(pagination=Pagination(page_size=limit))
        partitions = accessible.partition_keys

        fetch_before = self.engine.fetch_bound(decoded, scoring.SORT_NEW) if decoded else before
        windows = await self.engine.fetch_windows(
            partitions,
            limit=self.engine.fetch_limit(limit, decoded, scoring.SORT_NEW),
            before=fetch_before,
        )
        failed = [window.partition_key for window in windows if window.failed]
        if len(failed) == len(windows):
            _LOG.error("reviews.aggregate_failed", extra={"identity": identity, "partitions": partitions})
            raise AggregationError()

        before_micros = scoring.epoch_micros(before) if before is not None else 0

        def _keep(item: RankableItem) -> bool:
            if not isinstance(item, ReviewItem):
                return False
            return decoded is not None or before is None or scoring.epoch_micros(item.created_at) < before_micros

        merged = self.engine.merge_windows(
            windows,
            sort=scoring.SORT_NEW,
            now=self.engine.clock(),
            item_filter=_keep,
        )
        candidates = scoring.after_cursor(merged, decoded, scoring.SORT_NEW)
        selected, excluded = await self._select(candidates, identity, limit=limit, exclude_acted=exclude_acted)

        page: List[ReviewItem] = selected[:limit]
        has_more = len(selected) > limit
        next_cursor = (
            encode_cursor(scoring.cursor_for(page[-1], scoring.SORT_NEW)) if has_more and page else None
        )
        items, vote_counts = await self._enrich(page)
        counts = empty_label_counts()
        for item in items:
            counts[item.label] += 1
            counts["total"] += 1

        result = AggregationWindow(
            items=items,
            counts=counts,
            vote_counts=vote_counts,
            pagination=Pagination(page_size=limit, has_more=has_more, next_cursor=next_cursor),
            partial=bool(failed),
        )
        obs_logging.annotate_feed(
            feed_cache="miss", feed_items=len(items), feed_partial=bool(failed), feed_excluded=excluded
        )
        obs_metrics.REVIEW_AGG_EXCLUDED.inc(excluded)
        obs_metrics.REVIEW_AGG_DURATION.observe((perf_counter() - start) * 1000.0)
        if not failed:
            # snapshot: the store mutates items in place
            safe_set(self.cache, cache_key, result.model_copy(deep=True), self.cache_ttl)
        return result

    async def _select(
        self,
        candidates: Sequence[ReviewItem],
        identity: str,
        *,
        limit: int,
        exclude_acted: bool,
    ) -> Tuple[List[ReviewItem], int]:
        """Take up to ``limit + 1`` candidates, skipping targets already acted on.

        Lookups are issued batch by batch and stop once enough items are
        selected, so the work tracks the page size.
        """

        wanted = limit + 1
        if not exclude_acted:
            return list(candidates[:wanted]), 0
        acted: Dict[str, bool] = {}
        selected: List[ReviewItem] = []
        excluded = 0
        index = 0
        while index < len(candidates) and len(selected) < wanted:
            batch = candidates[index : index + wanted - len(selected)]
            index += len(batch)
            keys = [review_target_key(item) for item in batch]
            unknown = [key for key in dict.fromkeys(keys) if key not in acted]
            results = await asyncio.gather(*(self._has_acted(key, identity) for key in unknown))
            acted.update(zip(unknown, results))
            for item, key in zip(batch, keys):
                if acted[key]:
                    excluded += 1
                else:
                    selected.append(item)
        return selected, excluded

    async def _has_acted(self, target_key: str, identity: str) -> bool:
        try:
            return bool(await self.votes.has_acted(target_key, identity))
        except Exception:
            _LOG.warning("reviews.has_acted_failed", extra={"target_key": target_key}, exc_info=True)
            return False

    async def _enrich(self, page: Sequence[ReviewItem]) -> Tuple[List[AggregatedReview], Dict[str, int]]:
        voter_ids = list(dict.fromkeys(item.voter_id for item in page if item.voter_id))
        partition_keys = list(dict.fromkeys(item.partition_key for item in page))

        voters, communities, tallies, comments = await asyncio.gather(
            asyncio.gather(*(self._display(voter_id) for voter_id in voter_ids)),
            asyncio.gather(*(self._partition(key) for key in partition_keys)),
            asyncio.gather(*(self._tally(item.id) for item in page)),
            asyncio.gather(*(self._comments(item.id) for item in page)),
        )
        voter_map = dict(zip(voter_ids, voters))
        community_map = dict(zip(partition_keys, communities))

        vote_counts = empty_label_counts()
        items: List[AggregatedReview] = []
        for item, tally, thread in zip(page, tallies, comments):
            voter = voter_map.get(item.voter_id) if item.voter_id else None
            community = community_map.get(item.partition_key)
            votes = {label: 0 for label in REVIEW_LABELS}
            for label, count in tally.items():
                votes[normalise_label(label)] += max(0, int(count or 0))
            _tally_labels(votes, vote_counts)
            items.append(
                AggregatedReview(
                    id=item.id,
                    community_id=item.community_id,
                    community_name=community.display_name if community else None,
                    voter_id=item.voter_id,
                    voter_nickname=voter.display_name if voter else None,
                    voter_avatar=voter.avatar_ref if voter else None,
                    target_id=item.target_id,
                    target_key=review_target_key(item),
                    label=normalise_label(item.label),
                    comment=item.comment,
                    created_at=item.created_at,
                    votes=votes,
                    comments=list(thread),
                )
            )
        return items, vote_counts

    async def _display(self, identity_id: str) -> Optional[DisplayMetadata]:
        try:
            return await self.metadata.get_display_metadata(identity_id)
        except Exception:
            _LOG.warning("reviews.voter_metadata_failed", extra={"voter_id": identity_id}, exc_info=True)
            return None

    async def _partition(self, partition_key: str) -> Optional[PartitionMetadata]:
        try:
            return await self.metadata.get_partition_metadata(partition_key)
        except Exception:
            _LOG.warning("reviews.partition_metadata_failed", extra={"partition": partition_key}, exc_info=True)
            return None

    async def _tally(self, review_id: str) -> Dict[str, int]:
        try:
            return dict(await self.votes.get_vote_tally(review_id) or {})
        except Exception:
            _LOG.warning("reviews.vote_tally_failed", extra={"review_id": review_id}, exc_info=True)
            return {}

    async def _comments(self, review_id: str) -> List[ReviewComment]:
        if self.comments_per_item <= 0:
            return []
        try:
            rows = await self.sub_records.list_comments(review_id, limit=self.comments_per_item)
        except Exception:
            _LOG.warning("reviews.comments_failed", extra={"review_id": review_id}, exc_info=True)
            return []
        return list(rows)[: self.comments_per_item]


__all__ = ["ReviewAggregationService", "normalise_label", "review_target_key"]
