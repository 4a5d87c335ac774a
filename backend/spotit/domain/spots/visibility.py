"""Which Spots a viewer may see."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import AbstractSet, Iterable, List, Literal, Optional, Tuple

from spotit.domain.spots.geo import validate_coordinate, within_radius
from spotit.domain.spots.lifecycle import is_active
from spotit.domain.spots.models import Location, Spot

Order = Literal["newest", "oldest"]


class ViewMode(str, Enum):
	"""LIVE is the map/geofence view; ARCHIVE is the viewer's own Spots."""

	LIVE = "live"
	ARCHIVE = "archive"


def sort_spots(spots: Iterable[Spot], order: Order = "newest") -> List[Spot]:
	"""Order by ``created_at`` (newest first by default), ties by id."""
	ordered = sorted(spots, key=lambda spot: spot.id)
	return sorted(ordered, key=lambda spot: spot.created_at, reverse=(order == "newest"))


def _audience_match(spot: Spot, viewer_id: str, viewer_location: Optional[Location]) -> bool:
	if viewer_id == spot.creator_id or viewer_id in spot.recipients:
		return True
	if viewer_location is None:
		return False
	return within_radius(viewer_location, spot.location, spot.radius_m)


def is_visible(
	spot: Spot,
	viewer_id: str,
	now: datetime,
	blocked_creator_ids: AbstractSet[str],
	*,
	viewer_location: Optional[Location] = None,
	mode: ViewMode = ViewMode.LIVE,
) -> bool:
	if spot.creator_id in blocked_creator_ids:
		return False
	if mode is ViewMode.ARCHIVE:
		return spot.creator_id == viewer_id
	if not is_active(spot, now):
		return False
	return _audience_match(spot, viewer_id, viewer_location)


def visible_spots(
	spots: Iterable[Spot],
	viewer_id: str,
	now: datetime,
	blocked_creator_ids: AbstractSet[str] = frozenset(),
	*,
	viewer_location: Optional[Location] = None,
	mode: ViewMode = ViewMode.LIVE,
	order: Order = "newest",
) -> Tuple[Spot, ...]:
	"""Filter a candidate set for one viewer.

	Nothing is cached between calls: blocking a creator or crossing an expiry
	instant takes effect on the very next call.
	"""
	if viewer_location is not None:
		viewer_location = validate_coordinate(viewer_location.latitude, viewer_location.longitude)
	mode = ViewMode(mode)
	matches = [
		spot
		for spot in spots
		if is_visible(
			spot,
			viewer_id,
			now,
			blocked_creator_ids,
			viewer_location=viewer_location,
			mode=mode,
		)
	]
	return tuple(sort_spots(matches, order))
