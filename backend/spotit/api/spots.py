"""REST API surface for Spots, blocks and Spot notifications."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from spotit.api.deps import get_engine
from spotit.domain.spots.exceptions import InvalidCoordinate, NotFound, SyncFailed
from spotit.domain.spots.lifecycle import utcnow
from spotit.domain.spots.models import Location
from spotit.domain.spots.schemas import (
	BlockResponse,
	GeofenceOut,
	NextNotificationResponse,
	NotificationListResponse,
	NotificationOut,
	ReplyOut,
	ReplyRequest,
	SpotCreateRequest,
	SpotListResponse,
	SpotOut,
)
from spotit.domain.spots.service import SpotEngine
from spotit.domain.spots.visibility import ViewMode
from spotit.obs import logging as obs_logging

router = APIRouter()


async def _spot_scope(spot_id: str) -> str:
	obs_logging.bind_context(spot_id=spot_id)
	return spot_id


@router.get("/spots", response_model=SpotListResponse)
async def list_spots(
	mode: ViewMode = Query(default=ViewMode.LIVE),
	lat: Optional[float] = Query(default=None),
	lon: Optional[float] = Query(default=None),
	engine: SpotEngine = Depends(get_engine),
) -> SpotListResponse:
	if (lat is None) != (lon is None):
		raise InvalidCoordinate("coordinate_incomplete")
	if lat is not None and lon is not None:
		engine.update_location(lat, lon)
	stale = False
	try:
		await engine.refresh()
	except SyncFailed:
		stale = True
	now = utcnow()
	items = [SpotOut.from_spot(spot, now) for spot in engine.visible(mode)]
	return SpotListResponse(items=items, stale=stale)


@router.post("/spots", response_model=SpotOut, status_code=status.HTTP_201_CREATED)
async def create_spot(payload: SpotCreateRequest, engine: SpotEngine = Depends(get_engine)) -> SpotOut:
	location: Location = engine.select_point(payload.latitude, payload.longitude)
	spot = await engine.create_spot(
		message=payload.message,
		location=location,
		radius_m=payload.radius_m,
		duration_hours=payload.duration_hours,
		recipients=payload.recipients,
		kind=payload.kind,
	)
	return SpotOut.from_spot(spot, utcnow())


@router.post("/spots/{spot_id}/replies", response_model=ReplyOut, status_code=status.HTTP_201_CREATED)
async def reply_to_spot(
	payload: ReplyRequest,
	spot_id: str = Depends(_spot_scope),
	engine: SpotEngine = Depends(get_engine),
) -> ReplyOut:
	reply = await engine.reply(spot_id, payload.message)
	if reply is None:
		raise NotFound("spot_missing")
	return ReplyOut.from_reply(reply)


@router.delete("/spots/{spot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_spot(
	spot_id: str = Depends(_spot_scope),
	engine: SpotEngine = Depends(get_engine),
) -> Response:
	await engine.delete_spot(spot_id)
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/spots/{spot_id}/geofence", response_model=GeofenceOut)
async def spot_geofence(
	spot_id: str = Depends(_spot_scope),
	engine: SpotEngine = Depends(get_engine),
) -> GeofenceOut:
	center, radius_m = engine.geofence(spot_id)
	return GeofenceOut(spot_id=spot_id, latitude=center.latitude, longitude=center.longitude, radius_m=radius_m)


@router.put("/blocks/{user_id}", response_model=BlockResponse)
async def block_user(user_id: str, engine: SpotEngine = Depends(get_engine)) -> BlockResponse:
	changed = engine.block(user_id)
	return BlockResponse(user_id=user_id, blocked=user_id in engine.blocks, changed=changed)


@router.delete("/blocks/{user_id}", response_model=BlockResponse)
async def unblock_user(user_id: str, engine: SpotEngine = Depends(get_engine)) -> BlockResponse:
	changed = engine.unblock(user_id)
	return BlockResponse(user_id=user_id, blocked=False, changed=changed)


@router.post("/notifications/next", response_model=NextNotificationResponse)
async def next_notification(engine: SpotEngine = Depends(get_engine)) -> NextNotificationResponse:
	surfaced = engine.next_notification()
	if surfaced is None:
		return NextNotificationResponse()
	spot, notification = surfaced
	return NextNotificationResponse(
		notification=NotificationOut.from_notification(notification),
		spot=SpotOut.from_spot(spot, utcnow()),
	)


@router.post("/notifications/dismiss", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notification(engine: SpotEngine = Depends(get_engine)) -> Response:
	engine.dismiss()
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(engine: SpotEngine = Depends(get_engine)) -> NotificationListResponse:
	items = [NotificationOut.from_notification(item) for item in engine.inbox.items]
	return NotificationListResponse(items=items, unread=engine.inbox.unread_count())
