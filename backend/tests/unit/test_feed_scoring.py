from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from feedcore.feeds.domain.models import Cursor, PostItem
from feedcore.feeds.ranking import scoring

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _post(post_id: str, *, minutes: int = 0, up: int = 0, down: int = 0) -> PostItem:
    created = BASE + timedelta(minutes=minutes)
    post = PostItem(
        id=post_id,
        partition_key="community:c1",
        created_at=created,
        community_id="c1",
        author_id="u1",
        upvotes=up,
        downvotes=down,
    )
    post.hot_score = scoring.hot_score_for(post)
    return post


def test_hot_score_rewards_net_votes_at_equal_age():
    assert scoring.compute_hot_score(10, 0, BASE) > scoring.compute_hot_score(2, 0, BASE)
    assert scoring.compute_hot_score(0, 0, BASE) > scoring.compute_hot_score(0, 5, BASE)


@pytest.mark.parametrize("up,down", [(0, 0), (5, 1), (1, 9)])
def test_newer_item_never_loses_at_equal_net_score(up, down):
    older = scoring.compute_hot_score(up, down, BASE)
    newer = scoring.compute_hot_score(up, down, BASE + timedelta(hours=6))
    assert newer > older


def test_hot_score_is_deterministic_and_treats_naive_as_utc():
    naive = BASE.replace(tzinfo=None)
    assert scoring.compute_hot_score(3, 1, BASE) == scoring.compute_hot_score(3, 1, naive)
    expected = round((BASE.timestamp() - 1134028003) / 45000, 7)
    assert scoring.compute_hot_score(0, 0, BASE) == expected


def test_score_tracks_net_votes():
    post = _post("p", up=7, down=3)
    assert post.score == 4


def test_ties_break_by_id_ascending_in_every_direction():
    items = [_post("c"), _post("a"), _post("b")]
    for sort in (scoring.SORT_NEW, scoring.SORT_OLD, scoring.SORT_TOP_ALL, scoring.SORT_HOT):
        assert [item.id for item in scoring.sort_items(items, sort)] == ["a", "b", "c"]


def test_new_and_old_are_mirror_orders():
    items = [_post("x", minutes=1), _post("y", minutes=3), _post("z", minutes=2)]
    assert [item.id for item in scoring.sort_items(items, scoring.SORT_NEW)] == ["y", "z", "x"]
    assert [item.id for item in scoring.sort_items(items, scoring.SORT_OLD)] == ["x", "z", "y"]


def test_sort_value_for_recency_is_exact_microseconds():
    post = PostItem(
        id="p",
        partition_key="community:c1",
        created_at=BASE + timedelta(microseconds=7),
        community_id="c1",
        author_id="u1",
    )
    assert scoring.sort_value(post, scoring.SORT_NEW) == float(scoring.epoch_micros(BASE) + 7)


def test_normalise_sort_accepts_top_alias_and_rejects_unknown():
    assert scoring.normalise_sort("top") == scoring.SORT_TOP_ALL
    assert scoring.normalise_sort(" NEW ") == scoring.SORT_NEW
    with pytest.raises(ValueError):
        scoring.normalise_sort("random")


def test_recency_window_applies_only_to_bounded_top_orders():
    now = BASE + timedelta(days=2)
    stale = _post("stale")
    assert not scoring.within_recency_window(stale, scoring.SORT_TOP_24H, now)
    assert scoring.within_recency_window(stale, scoring.SORT_TOP_7D, now)
    assert scoring.within_recency_window(stale, scoring.SORT_TOP_ALL, now)


def test_after_cursor_drops_items_at_or_before_position():
    ordered = scoring.sort_items([_post("a", up=3), _post("b", up=3), _post("c", up=1)], scoring.SORT_TOP_ALL)
    cursor = Cursor(id="a", sort_key=3.0, sort=scoring.SORT_TOP_ALL)
    assert [item.id for item in scoring.after_cursor(ordered, cursor, scoring.SORT_TOP_ALL)] == ["b", "c"]


def test_trending_score_decays_with_inactivity():
    now = BASE + timedelta(days=1)
    fresh = scoring.compute_trending_score(10, now, 0, now=now)
    stale = scoring.compute_trending_score(10, BASE, 0, now=now)
    assert fresh == pytest.approx(10.0)
    assert stale < fresh
    assert scoring.compute_trending_score(0, now, 9, now=now) == pytest.approx(0.1)
