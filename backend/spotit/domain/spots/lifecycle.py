"""Expiry computation and active/expired state for Spots."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from uuid import uuid4

from spotit.domain.spots.exceptions import InvalidDuration, MalformedSpot
from spotit.domain.spots.geo import validate_coordinate, validate_radius
from spotit.domain.spots.models import TEMP_ID_PREFIX, Location, Spot, SpotKind

# Duration value the client sends for "Forever".
FOREVER_HOURS = 999999
# Every forever Spot expires at the last representable instant.
FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)

DURATION_PRESETS = (12, 24, 48, 72, 168, FOREVER_HOURS)
DEFAULT_DURATION_HOURS = 24
DEFAULT_RADIUS_M = 100
MIN_RADIUS_M = 10
MAX_RADIUS_M = 500


def as_utc(value: datetime) -> datetime:
	"""Interpret naive datetimes as UTC and normalise aware ones to UTC."""
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def validate_duration(duration_hours: int) -> int:
	if isinstance(duration_hours, bool) or not isinstance(duration_hours, int):
		raise InvalidDuration("duration_not_integer")
	if duration_hours <= 0:
		raise InvalidDuration("duration_not_positive")
	return duration_hours


def compute_expiry(created_at: datetime, duration_hours: int) -> datetime:
	validate_duration(duration_hours)
	if duration_hours == FOREVER_HOURS:
		return FAR_FUTURE
	try:
		return as_utc(created_at) + timedelta(hours=duration_hours)
	except OverflowError as exc:
		raise InvalidDuration("duration_overflows_calendar") from exc


def is_forever(spot: Spot) -> bool:
	return spot.duration_hours == FOREVER_HOURS or spot.expires_at >= FAR_FUTURE


def is_active(spot: Spot, now: datetime) -> bool:
	"""A Spot stops being active the instant ``now`` reaches ``expires_at``."""
	return as_utc(now) < spot.expires_at


def time_remaining(spot: Spot, now: datetime) -> Optional[timedelta]:
	"""None for forever Spots, otherwise the time left (never negative)."""
	if is_forever(spot):
		return None
	return max(spot.expires_at - as_utc(now), timedelta(0))


def expiry_label(spot: Spot, now: datetime) -> str:
	remaining = time_remaining(spot, now)
	if remaining is None:
		return "Never expires"
	if remaining <= timedelta(0):
		return "Expired"
	minutes = max(1, round(remaining.total_seconds() / 60))
	if minutes < 60:
		return f"Expires in {minutes}m"
	hours = round(minutes / 60)
	if hours < 24:
		return f"Expires in {hours}h"
	return f"Expires in {round(hours / 24)}d"


def _validate_message(message: str) -> str:
	if not isinstance(message, str) or not message.strip():
		raise MalformedSpot("message_empty")
	return message.strip()


def new_spot(
	*,
	creator_id: str,
	message: str,
	location: Location,
	radius_m: float = DEFAULT_RADIUS_M,
	duration_hours: int = DEFAULT_DURATION_HOURS,
	recipients: Iterable[str] = (),
	kind: SpotKind = SpotKind.MESSAGE,
	now: Optional[datetime] = None,
	spot_id: Optional[str] = None,
) -> Spot:
	"""Validate a draft and stamp its timestamps.

	Every check runs before the Spot is built so a rejected draft leaves no
	trace. Without ``spot_id`` the Spot gets a temporary client id.
	"""
	checked_location = validate_coordinate(location.latitude, location.longitude)
	checked_message = _validate_message(message)
	checked_radius = validate_radius(radius_m)
	validate_duration(duration_hours)
	created_at = as_utc(now or utcnow())
	return Spot(
		id=spot_id or f"{TEMP_ID_PREFIX}{uuid4().hex}",
		creator_id=creator_id,
		message=checked_message,
		location=checked_location,
		radius_m=checked_radius,
		duration_hours=duration_hours,
		created_at=created_at,
		expires_at=compute_expiry(created_at, duration_hours),
		recipients=frozenset(str(r) for r in recipients),
		kind=SpotKind(kind),
	)


def reschedule(spot: Spot, duration_hours: int) -> Spot:
	"""Explicit edit: change the duration and recompute expiry from ``created_at``."""
	return replace(
		spot,
		duration_hours=duration_hours,
		expires_at=compute_expiry(spot.created_at, duration_hours),
	)
