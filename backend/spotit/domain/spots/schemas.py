"""Pydantic schemas for the Spot and account HTTP surface."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from spotit.domain.spots import lifecycle
from spotit.domain.spots.models import Notification, Spot, SpotKind, SpotReply


class SignUpRequest(BaseModel):
	email: str = Field(..., min_length=3, max_length=254)
	password: str = Field(..., min_length=6, max_length=256)
	username: str = Field(..., min_length=1, max_length=64)


class SignInRequest(BaseModel):
	email: str = Field(..., min_length=3, max_length=254)
	password: str = Field(..., min_length=1, max_length=256)


class AccountOut(BaseModel):
	id: str
	email: str
	username: str


class SpotCreateRequest(BaseModel):
	message: str = Field(..., min_length=1, max_length=2000)
	# Coordinate range checks happen in the engine so they report invalid_coordinate.
	latitude: float
	longitude: float
	radius_m: float = Field(
		default=lifecycle.DEFAULT_RADIUS_M,
		ge=lifecycle.MIN_RADIUS_M,
		le=lifecycle.MAX_RADIUS_M,
	)
	duration_hours: int = Field(default=lifecycle.DEFAULT_DURATION_HOURS)
	recipients: List[str] = Field(default_factory=list)
	kind: SpotKind = SpotKind.MESSAGE


class ReplyRequest(BaseModel):
	message: str = Field(..., min_length=1, max_length=2000)


class ReplyOut(BaseModel):
	id: str
	spot_id: str
	user_id: str
	message: str
	created_at: datetime

	@classmethod
	def from_reply(cls, reply: SpotReply) -> "ReplyOut":
		return cls(
			id=reply.id,
			spot_id=reply.spot_id,
			user_id=reply.user_id,
			message=reply.message,
			created_at=reply.created_at,
		)


class SpotOut(BaseModel):
	id: str
	creator_id: str
	message: str
	latitude: float
	longitude: float
	radius_m: float
	duration_hours: int
	created_at: datetime
	expires_at: datetime
	recipients: List[str]
	replies: List[ReplyOut]
	kind: SpotKind
	pending: bool
	active: bool
	expiry_label: str

	@classmethod
	def from_spot(cls, spot: Spot, now: datetime) -> "SpotOut":
		return cls(
			id=spot.id,
			creator_id=spot.creator_id,
			message=spot.message,
			latitude=spot.location.latitude,
			longitude=spot.location.longitude,
			radius_m=spot.radius_m,
			duration_hours=spot.duration_hours,
			created_at=spot.created_at,
			expires_at=spot.expires_at,
			recipients=sorted(spot.recipients),
			replies=[ReplyOut.from_reply(reply) for reply in spot.replies],
			kind=spot.kind,
			pending=spot.is_temporary,
			active=lifecycle.is_active(spot, now),
			expiry_label=lifecycle.expiry_label(spot, now),
		)


class SpotListResponse(BaseModel):
	items: List[SpotOut]
	stale: bool = False


class GeofenceOut(BaseModel):
	spot_id: str
	latitude: float
	longitude: float
	radius_m: float


class NotificationOut(BaseModel):
	id: str
	spot_id: str
	read: bool
	received_at: datetime

	@classmethod
	def from_notification(cls, notification: Notification) -> "NotificationOut":
		return cls(
			id=notification.id,
			spot_id=notification.spot_id,
			read=notification.read,
			received_at=notification.received_at,
		)


class NextNotificationResponse(BaseModel):
	notification: Optional[NotificationOut] = None
	spot: Optional[SpotOut] = None


class NotificationListResponse(BaseModel):
	items: List[NotificationOut]
	unread: int


class BlockResponse(BaseModel):
	user_id: str
	blocked: bool
	changed: bool
