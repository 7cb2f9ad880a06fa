"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedcore.api import ops
from feedcore.feeds import api as feeds_api
from feedcore.feeds.services.aggregation import ReviewAggregationService
from feedcore.feeds.services.feed_query import FeedQueryService
from feedcore.feeds.services.feed_writer import FeedWriter
from feedcore.feeds.services.merge import MergePaginateEngine
from feedcore.infra.cache import CacheDomains
from feedcore.infra.memory_store import InMemoryDocumentStore
from feedcore.obs import init as obs_init
from feedcore.obs.logging import get_logger
from feedcore.settings import Settings, settings

_LOG = get_logger(__name__)


def wire_services(app: FastAPI, store: InMemoryDocumentStore, caches: CacheDomains, config: Settings) -> None:
	"""Attach engines and services to ``app.state`` for request handlers."""

	posts_engine = MergePaginateEngine(
		store.post_fetcher,
		cache=caches.posts,
		cache_ttl=config.feed_cache_ttl_seconds,
		source="posts",
	)
	comments_engine = MergePaginateEngine(
		store.comment_fetcher,
		cache=caches.comments,
		cache_ttl=config.comments_cache_ttl_seconds,
		source="comments",
	)
	reviews_engine = MergePaginateEngine(
		store.review_fetcher,
		cache=None,
		cache_ttl=config.reviews_cache_ttl_seconds,
		source="reviews",
	)

	app.state.store = store
	app.state.caches = caches
	app.state.feed_query = FeedQueryService(posts_engine, comments_engine, store, store, store)
	app.state.feed_writer = FeedWriter(store, caches=caches, media=store)
	app.state.review_aggregator = ReviewAggregationService(
		reviews_engine,
		store,
		store,
		store,
		store,
		cache=caches.reviews,
		cache_ttl=config.reviews_cache_ttl_seconds,
	)


def create_app(
	*,
	store: InMemoryDocumentStore | None = None,
	caches: CacheDomains | None = None,
	config: Settings | None = None,
) -> FastAPI:
	config = config or settings
	store = store or InMemoryDocumentStore()
	caches = caches or CacheDomains.from_settings(config)

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		_LOG.info("app.startup")
		try:
			yield
		finally:
			caches.clear_all()
			_LOG.info("app.shutdown")

	app = FastAPI(title="feedcore", lifespan=lifespan)
	origins = config.cors_origins()
	if origins:
		app.add_middleware(
			CORSMiddleware,
			allow_origins=list(origins),
			allow_credentials=True,
			allow_methods=["*"],
			allow_headers=["*"],
		)
	obs_init(app)
	wire_services(app, store, caches, config)
	app.include_router(ops.router)
	app.include_router(feeds_api.router)
	return app


app = create_app()
