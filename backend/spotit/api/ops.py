"""Operations endpoints: liveness, readiness and Prometheus metrics."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError

from spotit.infra.redis import redis_client
from spotit.settings import settings

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok", "service": settings.service_name}


@router.get("/health/ready")
async def health_ready() -> Response:
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=0.2)
	except (RedisError, OSError, asyncio.TimeoutError):
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return JSONResponse({"status": "degraded", "redis": False}, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
	return JSONResponse({"status": "ok", "redis": True})


@router.get("/metrics")
async def prometheus_metrics() -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
