"""Ranking helpers for feed windows.

``compute_hot_score`` is the classic signed-log vote magnitude plus a
recency term measured from a fixed epoch: deterministic, free of wall-clock
reads, and monotone in creation time at equal net score. The value stored on
items is refreshed by vote writes only.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from feedcore.feeds.domain.models import Cursor, RankableItem
from feedcore.settings import settings

SORT_HOT = "hot"
SORT_NEW = "new"
SORT_OLD = "old"
SORT_TOP_24H = "top_24h"
SORT_TOP_7D = "top_7d"
SORT_TOP_ALL = "top_all"

FEED_SORTS = (SORT_HOT, SORT_NEW, SORT_TOP_24H, SORT_TOP_7D, SORT_TOP_ALL)
COMMENT_SORTS = ("top", SORT_NEW, SORT_OLD)
ALL_SORTS = FEED_SORTS + (SORT_OLD,)

_SORT_ALIASES = {"top": SORT_TOP_ALL}

_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_HOT_EPOCH_SECONDS = 1134028003
_HOT_DECAY_SECONDS = 45000.0

T = TypeVar("T", bound=RankableItem)


def _aware(value: datetime) -> datetime:
	return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def epoch_micros(value: datetime) -> int:
	"""Exact microseconds since the Unix epoch (naive values are UTC)."""

	return (_aware(value) - _UNIX_EPOCH) // timedelta(microseconds=1)


def compute_hot_score(upvotes: int, downvotes: int, created_at: datetime) -> float:
	net = int(upvotes) - int(downvotes)
	order = math.log10(max(abs(net), 1))
	sign = 1 if net > 0 else -1 if net < 0 else 0
	seconds = epoch_micros(created_at) / 1_000_000 - _HOT_EPOCH_SECONDS
	return round(sign * order + seconds / _HOT_DECAY_SECONDS, 7)


def hot_score_for(item: RankableItem) -> float:
	return compute_hot_score(item.upvotes, item.downvotes, item.created_at)


def compute_trending_score(
	total_votes: int,
	last_activity: datetime,
	comment_count: int,
	*,
	now: Optional[datetime] = None,
) -> float:
	"""Vote volume decayed over a day since last activity, plus a comment bonus."""

	current = now or datetime.now(timezone.utc)
	hours = max(0.0, (current - _aware(last_activity)).total_seconds() / 3600.0)
	decay = math.exp(-hours / 24.0)
	engagement_bonus = math.log10(max(comment_count, 0) + 1) * 0.1
	return round(total_votes * decay + engagement_bonus, 6)


def normalise_sort(sort: str) -> str:
	value = (sort or "").strip().lower()
	value = _SORT_ALIASES.get(value, value)
	if value not in ALL_SORTS:
		raise ValueError(f"unsupported sort: {sort}")
	return value


def is_descending(sort: str) -> bool:
	return sort != SORT_OLD


def sort_value(item: RankableItem, sort: str) -> float:
	"""Primary numeric key for ``sort``; shared by ordering and cursors."""

	if sort == SORT_HOT:
		return float(item.hot_score)
	if sort in (SORT_NEW, SORT_OLD):
		return float(epoch_micros(item.created_at))
	return float(item.score)


def _key(value: float, item_id: str, sort: str) -> Tuple[float, str]:
	# ids always ascend on ties, whichever direction the primary key runs
	return (-value, item_id) if is_descending(sort) else (value, item_id)


def order_key(item: RankableItem, sort: str) -> Tuple[float, str]:
	return _key(sort_value(item, sort), item.id, sort)


def cursor_key(cursor: Cursor, sort: str) -> Tuple[float, str]:
	return _key(float(cursor.sort_key), cursor.id, sort)


def sort_items(items: Iterable[T], sort: str) -> List[T]:
	return sorted(items, key=lambda item: order_key(item, sort))


def recency_window(sort: str) -> Optional[timedelta]:
	if sort == SORT_TOP_24H:
		return timedelta(hours=settings.feed_top_24h_hours)
	if sort == SORT_TOP_7D:
		return timedelta(hours=settings.feed_top_7d_hours)
	return None


def within_recency_window(item: RankableItem, sort: str, now: datetime) -> bool:
	window = recency_window(sort)
	if window is None:
		return True
	return _aware(item.created_at) >= now - window


def cursor_for(item: RankableItem, sort: str) -> Cursor:
	return Cursor(id=item.id, sort_key=sort_value(item, sort), sort=sort)


def after_cursor(items: Sequence[T], cursor: Optional[Cursor], sort: str) -> List[T]:
	"""Keep the items of a sorted sequence that come strictly after ``cursor``."""

	if cursor is None:
		return list(items)
	boundary = cursor_key(cursor, sort)
	return [item for item in items if order_key(item, sort) > boundary]


__all__ = [
	"ALL_SORTS",
	"COMMENT_SORTS",
	"FEED_SORTS",
	"SORT_HOT",
	"SORT_NEW",
	"SORT_OLD",
	"SORT_TOP_24H",
	"SORT_TOP_7D",
	"SORT_TOP_ALL",
	"after_cursor",
	"compute_hot_score",
	"compute_trending_score",
	"cursor_for",
	"cursor_key",
	"epoch_micros",
	"hot_score_for",
	"is_descending",
	"normalise_sort",
	"order_key",
	"recency_window",
	"sort_items",
	"sort_value",
	"within_recency_window",
]
