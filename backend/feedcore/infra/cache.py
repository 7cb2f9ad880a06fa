"""Process-local TTL + LRU caches for feed read paths.

Each content domain gets its own capped ``CacheStore`` so eviction pressure
in one domain never starves another. Stores live for the lifetime of the
process (constructed by the app factory, cleared on shutdown) and are never
shared across replicas.

Read paths go through :func:`safe_get`, :func:`safe_set` and
:func:`safe_invalidate`: a cache fault is logged, counted and treated as a
miss so the authoritative fetch path always wins.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

from feedcore.obs import metrics as obs_metrics
from feedcore.settings import Settings

_LOG = logging.getLogger(__name__)

Clock = Callable[[], float]

DOMAIN_POSTS = "posts"
DOMAIN_COMMENTS = "comments"
DOMAIN_REVIEWS = "reviews"


@dataclass(slots=True)
class CacheEntry:
	key: str
	value: Any
	expires_at: float  # 0.0 = no expiry

	def is_expired(self, now: float) -> bool:
		return self.expires_at != 0.0 and self.expires_at <= now


class CacheStore:
	"""LRU cache with per-entry TTL and prefix invalidation.

	``ttl`` values are seconds. ``ttl <= 0`` stores an entry that never
	expires by time but can still be evicted by LRU pressure. Expiry is
	evaluated lazily when a key is read.
	"""

	def __init__(
		self,
		max_entries: int = 500,
		default_ttl: float = 60.0,
		*,
		name: str = "default",
		clock: Clock = time.monotonic,
	) -> None:
		if max_entries < 1:
			raise ValueError("max_entries must be positive")
		self.name = name
		self.max_entries = max_entries
		self.default_ttl = default_ttl
		self._clock = clock
		self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

	def get(self, key: str) -> Optional[Any]:
		entry = self._entries.get(key)
		if entry is None:
			obs_metrics.CACHE_MISSES.labels(domain=self.name).inc()
			return None
		if entry.is_expired(self._clock()):
			del self._entries[key]
			obs_metrics.CACHE_MISSES.labels(domain=self.name).inc()
			return None
		self._entries.move_to_end(key)
		obs_metrics.CACHE_HITS.labels(domain=self.name).inc()
		return entry.value

	def has(self, key: str) -> bool:
		entry = self._entries.get(key)
		if entry is None:
			return False
		if entry.is_expired(self._clock()):
			del self._entries[key]
			return False
		return True

	def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
		ttl_value = self.default_ttl if ttl is None else ttl
		expires_at = self._clock() + ttl_value if ttl_value > 0 else 0.0
		self._entries.pop(key, None)
		self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
		self._evict_if_needed()

	def delete(self, key: str) -> bool:
		return self._entries.pop(key, None) is not None

	def delete_by_prefix(self, prefix: str) -> int:
		doomed = [key for key in self._entries if key.startswith(prefix)]
		for key in doomed:
			del self._entries[key]
		return len(doomed)

	def clear(self) -> None:
		self._entries.clear()

	def size(self) -> int:
		return len(self._entries)

	def keys(self) -> Iterator[str]:
		return iter(list(self._entries.keys()))

	def _evict_if_needed(self) -> None:
		while len(self._entries) > self.max_entries:
			self._entries.popitem(last=False)
			obs_metrics.CACHE_EVICTIONS.labels(domain=self.name).inc()


class CacheDomains:
	"""Registry of independently capped cache stores, one per content domain."""

	def __init__(self, stores: Dict[str, CacheStore]) -> None:
		self._stores = dict(stores)

	@classmethod
	def from_settings(cls, config: Settings, *, clock: Clock = time.monotonic) -> "CacheDomains":
		limits = {
			DOMAIN_POSTS: (config.cache_posts_max_entries, config.feed_cache_ttl_seconds),
			DOMAIN_COMMENTS: (config.cache_comments_max_entries, config.comments_cache_ttl_seconds),
			DOMAIN_REVIEWS: (config.cache_reviews_max_entries, config.reviews_cache_ttl_seconds),
		}
		return cls(
			{
				name: CacheStore(max_entries, ttl, name=name, clock=clock)
				for name, (max_entries, ttl) in limits.items()
			}
		)

	def __getitem__(self, name: str) -> CacheStore:
		return self._stores[name]

	def __contains__(self, name: object) -> bool:
		return name in self._stores

	@property
	def posts(self) -> CacheStore:
		return self._stores[DOMAIN_POSTS]

	@property
	def comments(self) -> CacheStore:
		return self._stores[DOMAIN_COMMENTS]

	@property
	def reviews(self) -> CacheStore:
		return self._stores[DOMAIN_REVIEWS]

	def sizes(self) -> Dict[str, int]:
		return {name: store.size() for name, store in self._stores.items()}

	def clear_all(self) -> None:
		for store in self._stores.values():
			store.clear()


def safe_get(store: Optional[CacheStore], key: str) -> Optional[Any]:
	if store is None:
		return None
	try:
		return store.get(key)
	except Exception:
		obs_metrics.CACHE_ERRORS.labels(domain=getattr(store, "name", "unknown"), op="get").inc()
		_LOG.warning("cache.get_failed", extra={"domain": getattr(store, "name", "unknown"), "key": key}, exc_info=True)
		return None


def safe_set(store: Optional[CacheStore], key: str, value: Any, ttl: Optional[float] = None) -> None:
	if store is None:
		return
	try:
		store.set(key, value, ttl)
	except Exception:
		obs_metrics.CACHE_ERRORS.labels(domain=getattr(store, "name", "unknown"), op="set").inc()
		_LOG.warning("cache.set_failed", extra={"domain": getattr(store, "name", "unknown"), "key": key}, exc_info=True)


def safe_invalidate(store: Optional[CacheStore], *, prefix: Optional[str] = None) -> None:
	"""Drop entries under ``prefix`` (or the whole domain when no prefix is given)."""

	if store is None:
		return
	domain = getattr(store, "name", "unknown")
	try:
		if prefix is None:
			store.clear()
			obs_metrics.CACHE_INVALIDATIONS.labels(domain=domain, kind="clear").inc()
		else:
			store.delete_by_prefix(prefix)
			obs_metrics.CACHE_INVALIDATIONS.labels(domain=domain, kind="prefix").inc()
	except Exception:
		obs_metrics.CACHE_ERRORS.labels(domain=domain, op="invalidate").inc()
		_LOG.warning("cache.invalidate_failed", extra={"domain": domain, "prefix": prefix}, exc_info=True)


__all__ = [
	"CacheDomains",
	"CacheEntry",
	"CacheStore",
	"DOMAIN_COMMENTS",
	"DOMAIN_POSTS",
	"DOMAIN_REVIEWS",
	"safe_get",
	"safe_invalidate",
	"safe_set",
]
