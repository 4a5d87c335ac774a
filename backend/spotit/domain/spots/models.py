"""Domain models for Spots, replies and Spot notifications."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Tuple

# Client-generated ids live in their own namespace; server ids never carry it.
TEMP_ID_PREFIX = "tmp-"


def is_temp_id(spot_id: str) -> bool:
	return spot_id.startswith(TEMP_ID_PREFIX)


class SpotKind(str, Enum):
	"""Spot types offered when placing a Spot."""

	MESSAGE = "message"
	MEETUP = "meetup"
	INFO = "info"


@dataclass(frozen=True, slots=True)
class Location:
	latitude: float
	longitude: float


@dataclass(frozen=True, slots=True)
class SpotReply:
	"""A reply appended to exactly one Spot."""

	id: str
	spot_id: str
	user_id: str
	message: str
	created_at: datetime

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"spot_id": self.spot_id,
			"user_id": self.user_id,
			"message": self.message,
			"created_at": self.created_at.isoformat(),
		}


@dataclass(frozen=True, slots=True)
class Spot:
	"""A geotagged message.

	``location``, ``creator_id`` and ``created_at`` never change after
	creation; ``expires_at`` only changes through an explicit reschedule.
	"""

	id: str
	creator_id: str
	message: str
	location: Location
	radius_m: float
	duration_hours: int
	created_at: datetime
	expires_at: datetime
	recipients: FrozenSet[str] = frozenset()
	replies: Tuple[SpotReply, ...] = ()
	kind: SpotKind = SpotKind.MESSAGE

	@property
	def is_temporary(self) -> bool:
		return is_temp_id(self.id)

	def with_replies(self, replies: Tuple[SpotReply, ...]) -> "Spot":
		return replace(self, replies=tuple(replies))

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"creator_id": self.creator_id,
			"message": self.message,
			"latitude": self.location.latitude,
			"longitude": self.location.longitude,
			"radius_m": self.radius_m,
			"duration_hours": self.duration_hours,
			"created_at": self.created_at.isoformat(),
			"expires_at": self.expires_at.isoformat(),
			"recipients": sorted(self.recipients),
			"replies": [reply.to_dict() for reply in self.replies],
			"kind": self.kind.value,
		}


@dataclass(slots=True)
class Notification:
	"""Tells the viewer a Spot became visible. ``read`` only ever flips to True."""

	id: str
	spot_id: str
	received_at: datetime
	read: bool = field(default=False)

	def mark_read(self) -> bool:
		"""Transition Unseen -> Seen. Returns False when already seen."""
		if self.read:
			return False
		self.read = True
		return True

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"spot_id": self.spot_id,
			"read": self.read,
			"received_at": self.received_at.isoformat(),
		}
