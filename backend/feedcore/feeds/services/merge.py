"""Merge-paginate engine for partitioned feed content.

The backing store has no composite index, so a page spanning several
partitions is built in memory:

1. fetch a bounded window (``max(page_size + 1, fetch_floor)``) per partition,
   concurrently, tolerating individual partition failures;
2. filter and sort every window locally, then re-sort the concatenation;
3. drop duplicate ids (first occurrence wins) and everything at or before
   the cursor;
4. slice ``page_size`` items and derive the next cursor from the last one.

Windows are bounded per partition, so this is not an exact global top-K: an
item just below one partition's window can lose to lower-ranked items from
another partition. Ordering is exact within what was fetched.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from itertools import chain
from time import perf_counter
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from feedcore.feeds.domain.exceptions import AggregationError, ValidationError
from feedcore.feeds.domain.models import Cursor, FeedPage, Pagination, RankableItem
from feedcore.feeds.domain.ports import PartitionFetcher
from feedcore.feeds.ranking import scoring
from feedcore.feeds.services.cursor import decode_cursor, encode_cursor
from feedcore.infra.cache import CacheStore, safe_get, safe_set
from feedcore.obs import logging as obs_logging
from feedcore.obs import metrics as obs_metrics
from feedcore.settings import settings

_LOG = logging.getLogger(__name__)

ItemFilter = Callable[[RankableItem], bool]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class PartitionWindow:
    """Raw bounded window fetched for one partition."""

    partition_key: str
    items: List[RankableItem] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def dedupe(items: Iterable[RankableItem]) -> List[RankableItem]:
    seen: set[str] = set()
    unique: List[RankableItem] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


def build_cache_key(
    scope: str,
    partitions: Sequence[str],
    *,
    sort: str,
    page_size: int,
    cursor: Optional[str],
    filters: Optional[Mapping[str, object]] = None,
) -> str:
    filter_part = "&".join(f"{key}={filters[key]}" for key in sorted(filters)) if filters else "-"
    return f"{scope}:{','.join(partitions)}:{filter_part}:{sort}:{page_size}:{cursor or 'none'}"


class MergePaginateEngine:
    """Fetches, merges and pages bounded windows across partitions."""

    def __init__(
        self,
        fetcher: PartitionFetcher,
        *,
        cache: CacheStore | None = None,
        fetch_floor: int | None = None,
        fetch_timeout: float | None = None,
        cache_ttl: float | None = None,
        max_page_size: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
        source: str = "feed",
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.fetch_floor = max(1, fetch_floor if fetch_floor is not None else settings.feed_fetch_floor)
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else settings.feed_fetch_timeout_seconds
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.feed_cache_ttl_seconds
        self.max_page_size = max_page_size or settings.feed_page_size_max
        self.clock = clock
        self.source = source

    def window_size(self, page_size: int) -> int:
        # one look-ahead item so a single partition can still report has_more
        return max(page_size + 1, self.fetch_floor)

    def fetch_limit(self, page_size: int, cursor: Optional[Cursor], sort: str) -> int:
        """Window size for one request; a cursor-bounded fetch also returns the cursor item."""

        bounded = cursor is not None and sort == scoring.SORT_NEW
        return self.window_size(page_size) + (1 if bounded else 0)

    async def fetch_windows(
        self,
        partitions: Sequence[str],
        *,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[PartitionWindow]:
        """Fetch every partition concurrently; failures are recorded, not raised."""

        return list(
            await asyncio.gather(
                *(self._fetch_one(partition, limit=limit, before=before) for partition in partitions)
            )
        )

    async def _fetch_one(
        self,
        partition_key: str,
        *,
        limit: int,
        before: Optional[datetime],
    ) -> PartitionWindow:
        try:
            fetched = await asyncio.wait_for(
                self.fetcher.fetch(partition_key, limit=limit, before=before),
                timeout=self.fetch_timeout,
            )
        except Exception as exc:
            obs_metrics.FEED_PARTITION_FETCH_FAILURES.labels(source=self.source).inc()
            _LOG.warning(
                "merge.partition_failed",
                extra={"partition": partition_key, "source": self.source, "error": repr(exc)},
            )
            return PartitionWindow(partition_key=partition_key, error=exc)
        return PartitionWindow(partition_key=partition_key, items=list(fetched or [])[:limit])

    def merge_windows(
        self,
        windows: Sequence[PartitionWindow],
        *,
        sort: str,
        now: datetime,
        item_filter: Optional[ItemFilter] = None,
    ) -> List[RankableItem]:
        """Locally sort each window, then globally re-sort and dedupe."""

        local_windows = []
        for window in windows:
            if window.failed:
                continue
            kept = [
                item
                for item in window.items
                if not item.is_deleted
                and scoring.within_recency_window(item, sort, now)
                and (item_filter is None or item_filter(item))
            ]
            local_windows.append(scoring.sort_items(kept, sort))
        merged = scoring.sort_items(chain.from_iterable(local_windows), sort)
        return dedupe(merged)

    @staticmethod
    def slice_page(
        merged: Sequence[RankableItem],
        *,
        sort: str,
        page_size: int,
        cursor: Optional[Cursor],
    ) -> tuple[List[RankableItem], Pagination]:
        remaining = scoring.after_cursor(merged, cursor, sort)
        page = list(remaining[:page_size])
        has_more = len(remaining) > page_size
        next_cursor = encode_cursor(scoring.cursor_for(page[-1], sort)) if has_more and page else None
        return page, Pagination(page_size=page_size, has_more=has_more, next_cursor=next_cursor)

    def _validate(self, sort: str, page_size: int) -> str:
        try:
            normalised = scoring.normalise_sort(sort)
        except ValueError as exc:
            raise ValidationError("invalid_sort") from exc
        if page_size < 1 or page_size > self.max_page_size:
            raise ValidationError("invalid_page_size")
        return normalised

    @staticmethod
    def fetch_bound(cursor: Optional[Cursor], sort: str) -> Optional[datetime]:
        # inclusive of the cursor instant so equal-time ties are still fetched
        if cursor is None or sort != scoring.SORT_NEW:
            return None
        micros = int(cursor.sort_key) + 1
        return datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(microseconds=micros)

    async def paginate(
        self,
        partitions: Sequence[str],
        *,
        sort: str,
        page_size: int,
        cursor: Optional[str] = None,
        scope: str = "feed",
        filters: Optional[Mapping[str, object]] = None,
        item_filter: Optional[ItemFilter] = None,
    ) -> FeedPage:
        sort = self._validate(sort, page_size)
        partition_keys = sorted(set(partitions))
        decoded = decode_cursor(cursor, sort=sort)
        obs_logging.annotate_feed(
            feed_scope=scope.split(":", 1)[0],
            feed_sort=sort,
            feed_partitions=len(partition_keys),
            feed_cursor=decoded is not None,
        )
        if not partition_keys:
            return FeedPage(items=[], pagination=Pagination(page_size=page_size))

        cache_key = build_cache_key(
            scope,
            partition_keys,
            sort=sort,
            page_size=page_size,
            cursor=cursor if decoded else None,
            filters=filters,
        )
        cached = safe_get(self.cache, cache_key)
        if isinstance(cached, FeedPage):
            obs_logging.annotate_feed(feed_cache="hit", feed_items=len(cached.items))
            return cached

        start = perf_counter()
        windows = await self.fetch_windows(
            partition_keys,
            limit=self.fetch_limit(page_size, decoded, sort),
            before=self.fetch_bound(decoded, sort),
        )
        failed = [window.partition_key for window in windows if window.failed]
        if len(failed) == len(windows):
            _LOG.error("merge.all_partitions_failed", extra={"scope": scope, "partitions": partition_keys})
            raise AggregationError()

        merged = self.merge_windows(windows, sort=sort, now=self.clock(), item_filter=item_filter)
        page, pagination = self.slice_page(merged, sort=sort, page_size=page_size, cursor=decoded)
        result = FeedPage(items=page, pagination=pagination, partial=bool(failed))
        obs_logging.annotate_feed(feed_cache="miss", feed_items=len(page), feed_partial=bool(failed))

        obs_metrics.FEED_MERGE_CANDIDATES.inc(len(merged))
        obs_metrics.FEED_MERGE_DURATION.observe((perf_counter() - start) * 1000.0)
        if not failed:
            # snapshot: the store mutates items in place
            safe_set(self.cache, cache_key, result.model_copy(deep=True), self.cache_ttl)
        return result


__all__ = ["MergePaginateEngine", "PartitionWindow", "build_cache_key", "dedupe"]
