"""Operational endpoints: liveness, readiness with cache occupancy, metrics."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from feedcore.infra.cache import CacheDomains
from feedcore.obs import metrics as obs_metrics
from feedcore.settings import settings

router = APIRouter(tags=["ops"])

_REQUIRED_SERVICES = ("feed_query", "feed_writer", "review_aggregator")


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
) -> None:
	if settings.obs_metrics_public:
		return
	if not settings.obs_admin_token or x_admin_token != settings.obs_admin_token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="metrics_forbidden")


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(request: Request) -> dict[str, object]:
	"""Ready once every feed service is wired; reports entries per cache domain."""

	state = request.app.state
	missing = [name for name in _REQUIRED_SERVICES if getattr(state, name, None) is None]
	caches: Optional[CacheDomains] = getattr(state, "caches", None)
	if missing or caches is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="services_not_wired")
	sizes = caches.sizes()
	for domain, size in sizes.items():
		obs_metrics.CACHE_ENTRIES.labels(domain=domain).set(size)
	return {"status": "ok", "caches": sizes}


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = ["router"]
