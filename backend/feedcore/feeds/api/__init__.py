"""FastAPI routers for the feed core."""

from __future__ import annotations

from fastapi import APIRouter

from feedcore.feeds.api import feeds, posts, reviews

router = APIRouter(prefix="/api/feeds/v1")

router.include_router(feeds.router)
router.include_router(posts.router)
router.include_router(reviews.router)

__all__ = ["router"]
