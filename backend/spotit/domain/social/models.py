"""Domain models for friends, friend requests and blocks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Set

from spotit.domain.spots.lifecycle import as_utc, utcnow


class FriendStatus(str, Enum):
	ONLINE = "online"
	OFFLINE = "offline"


class FriendRequestStatus(str, Enum):
	PENDING = "pending"


def format_ago(then: Optional[datetime], now: Optional[datetime] = None) -> str:
	"""Compact relative time: ``Just now``, ``5m ago``, ``3h ago``, ``2d ago``."""
	if then is None:
		return "Unknown"
	delta = as_utc(now or utcnow()) - as_utc(then)
	minutes = round(delta.total_seconds() / 60)
	if minutes < 1:
		return "Just now"
	if minutes < 60:
		return f"{minutes}m ago"
	hours = round(minutes / 60)
	if hours < 24:
		return f"{hours}h ago"
	return f"{round(hours / 24)}d ago"


@dataclass(slots=True)
class Friend:
	id: str
	name: str
	avatar: str
	status: FriendStatus = FriendStatus.OFFLINE
	last_active: Optional[datetime] = None

	def __post_init__(self) -> None:
		self.status = FriendStatus(self.status)
		if self.status is FriendStatus.ONLINE:
			self.last_active = None

	def last_active_label(self, now: Optional[datetime] = None) -> str:
		if self.status is FriendStatus.ONLINE:
			return "Online"
		return format_ago(self.last_active, now)

	@classmethod
	def from_record(cls, record: dict) -> "Friend":
		return cls(
			id=str(record["id"]),
			name=str(record.get("name") or ""),
			avatar=str(record.get("avatar") or ""),
			status=FriendStatus(record.get("status") or FriendStatus.OFFLINE.value),
			last_active=as_utc(record["last_active"]) if record.get("last_active") else None,
		)


@dataclass(slots=True)
class FriendRequest:
	"""A pending request; accepting or rejecting consumes it."""

	id: str
	name: str
	avatar: str
	status: FriendRequestStatus = FriendRequestStatus.PENDING

	def accept(self) -> Friend:
		return Friend(id=self.id, name=self.name, avatar=self.avatar, status=FriendStatus.OFFLINE)


class BlockList:
	"""Creators the viewer has blocked. Checked on every visibility query."""

	def __init__(self, blocked: Iterable[str] = ()) -> None:
		self._blocked: Set[str] = {str(user_id) for user_id in blocked}

	def block(self, user_id: str) -> bool:
		if user_id in self._blocked:
			return False
		self._blocked.add(user_id)
		return True

	def unblock(self, user_id: str) -> bool:
		if user_id not in self._blocked:
			return False
		self._blocked.discard(user_id)
		return True

	def __contains__(self, user_id: object) -> bool:
		return user_id in self._blocked

	def snapshot(self) -> FrozenSet[str]:
		return frozenset(self._blocked)
