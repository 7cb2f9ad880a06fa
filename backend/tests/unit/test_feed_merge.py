from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from feedcore.feeds.domain.exceptions import AggregationError, ValidationError
from feedcore.feeds.domain.models import Cursor, PostItem
from feedcore.feeds.ranking import scoring
from feedcore.feeds.services.cursor import decode_cursor, encode_cursor
from feedcore.feeds.services.merge import MergePaginateEngine, build_cache_key
from feedcore.infra.cache import CacheStore

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _post(post_id: str, community: str, *, minutes_ago: float, up: int = 0, deleted: bool = False) -> PostItem:
    post = PostItem(
        id=post_id,
        partition_key=f"community:{community}",
        created_at=NOW - timedelta(minutes=minutes_ago),
        community_id=community,
        author_id="author",
        upvotes=up,
        is_deleted=deleted,
    )
    post.hot_score = scoring.hot_score_for(post)
    return post


class _StubFetcher:
    def __init__(self, partitions, *, failing=(), slow=()) -> None:
        self.partitions = partitions
        self.failing = set(failing)
        self.slow = set(slow)
        self.calls = []

    async def fetch(self, partition_key, *, limit, before=None):
        self.calls.append((partition_key, limit, before))
        if partition_key in self.failing:
            raise RuntimeError(f"{partition_key} unavailable")
        if partition_key in self.slow:
            await asyncio.sleep(1)
        rows = [
            item
            for item in self.partitions.get(partition_key, [])
            if before is None or item.created_at < before
        ]
        newest = sorted(rows, key=lambda item: item.created_at, reverse=True)[:limit]
        # reversed so the engine cannot rely on the store's order
        return list(reversed(newest))


def _engine(fetcher, *, cache=None, floor=25, timeout=1.0):
    return MergePaginateEngine(
        fetcher,
        cache=cache,
        fetch_floor=floor,
        fetch_timeout=timeout,
        cache_ttl=30.0,
        max_page_size=100,
        clock=lambda: NOW,
    )


def _three_partitions():
    return {
        "community:a": [_post("a1", "a", minutes_ago=10), _post("a2", "a", minutes_ago=50)],
        "community:b": [
            _post("b1", "b", minutes_ago=5),
            _post("b2", "b", minutes_ago=20),
            _post("b3", "b", minutes_ago=60),
        ],
        "community:c": [_post("c1", "c", minutes_ago=30)],
    }


async def _drain(engine, partitions, *, sort, page_size):
    seen, cursor = [], None
    while True:
        page = await engine.paginate(partitions, sort=sort, page_size=page_size, cursor=cursor)
        seen.extend(item.id for item in page.items)
        if not page.pagination.has_more:
            return seen
        cursor = page.pagination.next_cursor


@pytest.mark.asyncio
async def test_paginates_newest_first_across_partitions():
    engine = _engine(_StubFetcher(_three_partitions()))
    partitions = ["community:a", "community:b", "community:c"]

    first = await engine.paginate(partitions, sort="new", page_size=4)
    assert [item.id for item in first.items] == ["b1", "a1", "b2", "c1"]
    assert first.pagination.has_more is True
    assert first.partial is False

    second = await engine.paginate(partitions, sort="new", page_size=4, cursor=first.pagination.next_cursor)
    assert [item.id for item in second.items] == ["a2", "b3"]
    assert second.pagination.has_more is False
    assert second.pagination.next_cursor is None


@pytest.mark.asyncio
async def test_page_boundaries_do_not_change_the_sequence():
    partitions = ["community:a", "community:b", "community:c"]
    expected = await _drain(_engine(_StubFetcher(_three_partitions())), partitions, sort="new", page_size=10)
    for size in (1, 2, 3, 5):
        engine = _engine(_StubFetcher(_three_partitions()))
        assert await _drain(engine, partitions, sort="new", page_size=size) == expected


@pytest.mark.asyncio
async def test_equal_timestamps_break_by_id_and_survive_paging():
    data = {
        "community:a": [_post("t2", "a", minutes_ago=1), _post("t4", "a", minutes_ago=1)],
        "community:b": [_post("t1", "b", minutes_ago=1), _post("t3", "b", minutes_ago=1)],
    }
    engine = _engine(_StubFetcher(data))
    assert await _drain(engine, list(data), sort="new", page_size=1) == ["t1", "t2", "t3", "t4"]


@pytest.mark.asyncio
async def test_duplicates_across_partitions_are_served_once():
    shared = _post("shared", "a", minutes_ago=3)
    data = {
        "community:a": [shared, _post("a1", "a", minutes_ago=9)],
        "author:author": [shared],
    }
    page = await _engine(_StubFetcher(data)).paginate(list(data), sort="new", page_size=10)
    assert [item.id for item in page.items] == ["shared", "a1"]


@pytest.mark.asyncio
async def test_soft_deleted_and_out_of_window_items_are_dropped():
    data = {
        "community:a": [
            _post("fresh", "a", minutes_ago=60, up=2),
            _post("gone", "a", minutes_ago=30, up=9, deleted=True),
            _post("old", "a", minutes_ago=60 * 30, up=50),
        ]
    }
    engine = _engine(_StubFetcher(data))
    day = await engine.paginate(list(data), sort="top_24h", page_size=10)
    assert [item.id for item in day.items] == ["fresh"]
    week = await engine.paginate(list(data), sort="top_7d", page_size=10)
    assert [item.id for item in week.items] == ["old", "fresh"]


@pytest.mark.asyncio
async def test_window_size_uses_floor_and_new_cursor_bounds_fetch():
    fetcher = _StubFetcher(_three_partitions())
    engine = _engine(fetcher, floor=25)
    page = await engine.paginate(["community:a"], sort="new", page_size=1)
    assert fetcher.calls[-1][1] == 25
    assert fetcher.calls[-1][2] is None

    await engine.paginate(["community:a"], sort="new", page_size=1, cursor=page.pagination.next_cursor)
    bound = fetcher.calls[-1][2]
    assert bound == NOW - timedelta(minutes=10) + timedelta(microseconds=1)
    assert fetcher.calls[-1][1] == 26

    await engine.paginate(["community:a"], sort="hot", page_size=40)
    assert fetcher.calls[-1][1] == 41


@pytest.mark.asyncio
@pytest.mark.parametrize("page_size", [25, 29, 30, 100])
async def test_single_partition_at_or_above_floor_pages_to_the_end(page_size):
    data = {"community:a": [_post(f"p{index:02d}", "a", minutes_ago=index) for index in range(30)]}
    engine = _engine(_StubFetcher(data), floor=25)

    first = await engine.paginate(list(data), sort="new", page_size=page_size)
    assert first.pagination.has_more is (page_size < 30)

    seen = await _drain(engine, list(data), sort="new", page_size=page_size)
    assert seen == [f"p{index:02d}" for index in range(30)]


@pytest.mark.asyncio
async def test_paging_reaches_items_sharing_the_cursor_instant():
    data = {
        "community:a": [_post(f"s{index:02d}", "a", minutes_ago=5) for index in range(3)]
        + [_post(f"o{index:02d}", "a", minutes_ago=10 + index) for index in range(30)]
    }
    engine = _engine(_StubFetcher(data), floor=25)
    seen = await _drain(engine, list(data), sort="new", page_size=2)
    assert seen == ["s00", "s01", "s02"] + [f"o{index:02d}" for index in range(30)]


@pytest.mark.asyncio
async def test_failing_partition_is_skipped_and_result_not_cached():
    fetcher = _StubFetcher(_three_partitions(), failing={"community:b"})
    cache = CacheStore(10, 30.0, name="posts")
    engine = _engine(fetcher, cache=cache)
    partitions = ["community:a", "community:b", "community:c"]

    page = await engine.paginate(partitions, sort="new", page_size=10)
    assert page.partial is True
    assert [item.id for item in page.items] == ["a1", "c1", "a2"]
    assert cache.size() == 0

    calls = len(fetcher.calls)
    await engine.paginate(partitions, sort="new", page_size=10)
    assert len(fetcher.calls) == calls + 3


@pytest.mark.asyncio
async def test_timed_out_partition_counts_as_failure():
    fetcher = _StubFetcher(_three_partitions(), slow={"community:c"})
    engine = _engine(fetcher, timeout=0.01)
    page = await engine.paginate(["community:a", "community:c"], sort="new", page_size=10)
    assert page.partial is True
    assert [item.id for item in page.items] == ["a1", "a2"]


@pytest.mark.asyncio
async def test_all_partitions_failing_raises():
    fetcher = _StubFetcher({}, failing={"community:a", "community:b"})
    with pytest.raises(AggregationError):
        await _engine(fetcher).paginate(["community:a", "community:b"], sort="hot", page_size=5)


@pytest.mark.asyncio
async def test_no_partitions_returns_empty_page_without_fetching():
    fetcher = _StubFetcher({})
    page = await _engine(fetcher).paginate([], sort="hot", page_size=5)
    assert page.items == []
    assert page.pagination.has_more is False
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_cached_page_is_served_without_refetch():
    fetcher = _StubFetcher(_three_partitions())
    cache = CacheStore(10, 30.0, name="posts")
    engine = _engine(fetcher, cache=cache)

    first = await engine.paginate(["community:b", "community:a"], sort="hot", page_size=2, scope="home:u1")
    calls = len(fetcher.calls)
    again = await engine.paginate(["community:a", "community:b"], sort="hot", page_size=2, scope="home:u1")
    assert again == first
    assert len(fetcher.calls) == calls
    assert all(key.startswith("home:u1:community:a,community:b:") for key in cache.keys())


@pytest.mark.asyncio
async def test_cursor_from_another_sort_restarts_from_top():
    engine = _engine(_StubFetcher(_three_partitions()))
    foreign = encode_cursor(Cursor(id="b1", sort_key=99.0, sort="hot"))
    page = await engine.paginate(["community:b"], sort="new", page_size=1, cursor=foreign)
    assert [item.id for item in page.items] == ["b1"]
    assert decode_cursor(page.pagination.next_cursor, sort="new").id == "b1"


@pytest.mark.asyncio
@pytest.mark.parametrize("sort,page_size", [("sideways", 10), ("new", 0), ("new", 101)])
async def test_invalid_sort_or_page_size_is_rejected(sort, page_size):
    with pytest.raises(ValidationError):
        await _engine(_StubFetcher({})).paginate(["community:a"], sort=sort, page_size=page_size)


def test_cache_key_is_order_independent_for_filters():
    one = build_cache_key("s", ["p1"], sort="new", page_size=5, cursor=None, filters={"b": 1, "a": 2})
    two = build_cache_key("s", ["p1"], sort="new", page_size=5, cursor=None, filters={"a": 2, "b": 1})
    assert one == two == "s:p1:a=2&b=1:new:5:none"


@pytest.mark.asyncio
async def test_cached_page_is_a_snapshot_of_fetched_items():
    data = _three_partitions()
    engine = _engine(_StubFetcher(data), cache=CacheStore(10, 30.0, name="posts"))
    first = await engine.paginate(["community:a"], sort="new", page_size=5)
    assert first.items[0].upvotes == 0

    data["community:a"][0].upvotes = 99
    cached = await engine.paginate(["community:a"], sort="new", page_size=5)
    assert cached.items[0].id == "a1"
    assert cached.items[0].upvotes == 0
