from __future__ import annotations

import pytest

from feedcore.infra.cache import CacheDomains, CacheStore, safe_get, safe_invalidate, safe_set
from feedcore.settings import settings


def test_entry_expires_lazily_after_ttl(fake_clock):
    store = CacheStore(10, 30.0, name="posts", clock=fake_clock)
    store.set("k", "v")
    fake_clock.advance(29.9)
    assert store.get("k") == "v"
    fake_clock.advance(0.2)
    assert store.size() == 1
    assert store.get("k") is None
    assert store.size() == 0


def test_non_positive_ttl_never_expires(fake_clock):
    store = CacheStore(10, 30.0, clock=fake_clock)
    store.set("forever", 1, ttl=0)
    store.set("also", 2, ttl=-5)
    fake_clock.advance(10**7)
    assert store.get("forever") == 1
    assert store.has("also")


def test_lru_evicts_least_recently_used(fake_clock):
    store = CacheStore(2, 60.0, clock=fake_clock)
    store.set("a", 1)
    store.set("b", 2)
    assert store.get("a") == 1
    store.set("c", 3)
    assert store.get("b") is None
    assert store.get("a") == 1
    assert store.get("c") == 3
    assert store.size() == 2


def test_overwrite_refreshes_recency_and_ttl(fake_clock):
    store = CacheStore(2, 10.0, clock=fake_clock)
    store.set("a", 1)
    store.set("b", 2)
    fake_clock.advance(8)
    store.set("a", 10)
    store.set("c", 3)
    fake_clock.advance(5)
    assert store.get("a") == 10
    assert store.get("b") is None


def test_delete_by_prefix_only_touches_matching_keys(fake_clock):
    store = CacheStore(10, 60.0, clock=fake_clock)
    store.set("postComments:p1:top", 1)
    store.set("postComments:p1:new", 2)
    store.set("postComments:p10:top", 3)
    assert store.delete_by_prefix("postComments:p1:") == 2
    assert list(store.keys()) == ["postComments:p10:top"]
    assert store.delete("postComments:p10:top") is True
    assert store.delete("missing") is False


def test_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        CacheStore(0, 10.0)


def test_domains_are_independent(fake_clock):
    domains = CacheDomains.from_settings(settings, clock=fake_clock)
    for index in range(settings.cache_posts_max_entries + 5):
        domains.posts.set(f"k{index}", index)
    domains.comments.set("k0", "comment")
    assert domains.posts.size() == settings.cache_posts_max_entries
    assert domains.comments.get("k0") == "comment"
    assert "reviews" in domains and "search" not in domains
    domains.clear_all()
    assert domains.posts.size() == 0
    assert domains.comments.size() == 0


class _BrokenStore:
    name = "posts"

    def get(self, key):
        raise RuntimeError("boom")

    def set(self, key, value, ttl=None):
        raise RuntimeError("boom")

    def clear(self):
        raise RuntimeError("boom")

    def delete_by_prefix(self, prefix):
        raise RuntimeError("boom")


def test_safe_helpers_turn_faults_into_misses():
    broken = _BrokenStore()
    assert safe_get(broken, "k") is None
    safe_set(broken, "k", 1, 5)
    safe_invalidate(broken)
    safe_invalidate(broken, prefix="home:")
    assert safe_get(None, "k") is None


def test_safe_invalidate_clears_or_prefixes(fake_clock):
    store = CacheStore(10, 60.0, clock=fake_clock)
    store.set("home:a:x", 1)
    store.set("community:c1:x", 2)
    safe_invalidate(store, prefix="home:")
    assert list(store.keys()) == ["community:c1:x"]
    safe_invalidate(store)
    assert store.size() == 0
