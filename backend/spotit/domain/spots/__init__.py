"""Spots: creation, lifecycle, visibility, sync and notifications."""

from spotit.domain.spots.exceptions import (
	BackendError,
	InvalidCoordinate,
	InvalidDuration,
	MalformedSpot,
	NotFound,
	SpotError,
	SyncFailed,
	Unauthenticated,
)
from spotit.domain.spots.models import Location, Notification, Spot, SpotKind, SpotReply

__all__ = [
	"BackendError",
	"InvalidCoordinate",
	"InvalidDuration",
	"Location",
	"MalformedSpot",
	"NotFound",
	"Notification",
	"Spot",
	"SpotError",
	"SpotKind",
	"SpotReply",
	"SyncFailed",
	"Unauthenticated",
]
