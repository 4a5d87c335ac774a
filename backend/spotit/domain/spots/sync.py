"""Reconciliation of the remote Spot snapshot with local optimistic edits.

``reconcile`` and ``prune`` are pure. ``SpotStore`` owns the one authoritative
Spot collection for a viewer and is its only writer: every change goes through
``_apply`` while holding the store lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from spotit.domain.spots import lifecycle
from spotit.domain.spots.exceptions import BackendError, MalformedSpot, NotFound, SpotError, SyncFailed
from spotit.domain.spots.models import Location, Spot, SpotKind, SpotReply, is_temp_id
from spotit.domain.spots.records import parse_snapshot, spot_from_record, spot_to_payload
from spotit.domain.spots.sink import LoggingSink, NotificationSink, Severity
from spotit.domain.spots.storage import SpotBackend
from spotit.domain.spots.visibility import sort_spots
from spotit.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


@dataclass
class PendingState:
	"""Local mutations the remote store has not confirmed yet."""

	# temp id -> optimistic Spot
	creates: Dict[str, Spot] = field(default_factory=dict)
	# temp id -> Spot as returned by the storage collaborator
	confirmed: Dict[str, Spot] = field(default_factory=dict)
	deletes: Set[str] = field(default_factory=set)
	# spot id -> replies in append order
	replies: Dict[str, List[SpotReply]] = field(default_factory=dict)

	def resolve(self, spot_id: str) -> str:
		server = self.confirmed.get(spot_id)
		return server.id if server is not None else spot_id

	def copy(self) -> "PendingState":
		return PendingState(
			creates=dict(self.creates),
			confirmed=dict(self.confirmed),
			deletes=set(self.deletes),
			replies={key: list(value) for key, value in self.replies.items()},
		)

	def is_empty(self) -> bool:
		return not (self.creates or self.confirmed or self.deletes or self.replies)

	def _pending_ids(self) -> Set[str]:
		ids = {temp_id for temp_id in self.creates if temp_id not in self.confirmed}
		ids.update(server.id for server in self.confirmed.values())
		return ids


def _merge_replies(spot: Spot, extra: Iterable[SpotReply]) -> Spot:
	seen = {reply.id for reply in spot.replies}
	appended: List[SpotReply] = []
	for reply in extra:
		if reply.id in seen:
			continue
		seen.add(reply.id)
		appended.append(replace(reply, spot_id=spot.id))
	if not appended:
		return spot
	return spot.with_replies(spot.replies + tuple(appended))


def reconcile(remote_snapshot: Sequence[Spot], pending: PendingState) -> Tuple[Spot, ...]:
	"""Merge the remote snapshot with pending local state, newest first."""
	merged: Dict[str, Spot] = {spot.id: spot for spot in remote_snapshot}

	for temp_id, optimistic in pending.creates.items():
		server = pending.confirmed.get(temp_id)
		if server is None:
			merged.setdefault(temp_id, optimistic)
		elif server.id not in merged:
			merged[server.id] = server

	for spot_id in pending.deletes:
		merged.pop(spot_id, None)
		merged.pop(pending.resolve(spot_id), None)

	for spot_id, replies in pending.replies.items():
		target = pending.resolve(spot_id)
		spot = merged.get(target)
		if spot is not None:
			merged[target] = _merge_replies(spot, replies)

	return tuple(sort_spots(merged.values()))


def prune(remote_snapshot: Sequence[Spot], pending: PendingState) -> PendingState:
	"""Drop markers the remote snapshot already reflects.

	Pruning never changes what ``reconcile`` produces for the same snapshot.
	"""
	remote: Dict[str, Spot] = {spot.id: spot for spot in remote_snapshot}
	out = pending.copy()

	for temp_id, server in pending.confirmed.items():
		if server.id in remote:
			out.creates.pop(temp_id, None)
			out.confirmed.pop(temp_id, None)

	for spot_id in pending.deletes:
		if not is_temp_id(spot_id) and spot_id not in remote:
			out.deletes.discard(spot_id)

	still_pending = out._pending_ids()
	for spot_id, replies in pending.replies.items():
		target = pending.resolve(spot_id)
		if target in remote:
			landed = {reply.id for reply in remote[target].replies}
			left = [reply for reply in replies if reply.id not in landed]
		elif target in still_pending:
			left = list(replies)
		else:
			left = []
		if left:
			out.replies[spot_id] = left
		else:
			out.replies.pop(spot_id, None)
	return out


class SpotStore:
	"""Single-writer owner of a viewer's Spot collection."""

	def __init__(
		self,
		backend: SpotBackend,
		viewer_id: str,
		*,
		sink: Optional[NotificationSink] = None,
	) -> None:
		self._backend = backend
		self._viewer_id = viewer_id
		self._sink: NotificationSink = sink or LoggingSink()
		self._remote: Tuple[Spot, ...] = ()
		self._pending = PendingState()
		self._spots: Tuple[Spot, ...] = ()
		self._lock = asyncio.Lock()
		self._issued = 0

	@property
	def viewer_id(self) -> str:
		return self._viewer_id

	@property
	def spots(self) -> Tuple[Spot, ...]:
		return self._spots

	@property
	def pending(self) -> PendingState:
		return self._pending.copy()

	def get(self, spot_id: str) -> Optional[Spot]:
		target = self._pending.resolve(spot_id)
		for spot in self._spots:
			if spot.id == target:
				return spot
		return None

	def _apply(self) -> None:
		# Callers hold self._lock.
		self._spots = reconcile(self._remote, self._pending)

	async def refresh(self) -> Tuple[Spot, ...]:
		"""Fetch, prune confirmed markers and merge.

		A result that arrives after a newer refresh was issued is discarded.
		On a backend failure the last good snapshot plus pending edits is kept
		and ``SyncFailed`` carries that set to the caller.
		"""
		self._issued += 1
		ticket = self._issued
		try:
			rows = await self._backend.fetch_spots(self._viewer_id)
		except BackendError as exc:
			async with self._lock:
				if ticket != self._issued:
					obs_metrics.inc_sync("discarded")
					return self._spots
				self._apply()
				fallback = self._spots
			obs_metrics.inc_sync("failed")
			logger.warning("spot refresh failed reason=%s; serving %d cached spots", exc.reason, len(fallback))
			self._sink.show("Couldn't refresh Spots. Showing the last known Spots.", Severity.ERROR)
			raise SyncFailed(fallback) from exc

		remote = parse_snapshot(rows)
		async with self._lock:
			if ticket != self._issued:
				obs_metrics.inc_sync("discarded")
				logger.debug("discarding superseded refresh ticket=%s latest=%s", ticket, self._issued)
				return self._spots
			self._pending = prune(remote, self._pending)
			self._remote = remote
			self._apply()
			obs_metrics.inc_sync("ok")
			return self._spots

	async def create(
		self,
		*,
		message: str,
		location: Location,
		radius_m: float = lifecycle.DEFAULT_RADIUS_M,
		duration_hours: int = lifecycle.DEFAULT_DURATION_HOURS,
		recipients: Iterable[str] = (),
		kind: SpotKind = SpotKind.MESSAGE,
	) -> Spot:
		optimistic = lifecycle.new_spot(
			creator_id=self._viewer_id,
			message=message,
			location=location,
			radius_m=radius_m,
			duration_hours=duration_hours,
			recipients=recipients,
			kind=kind,
		)
		temp_id = optimistic.id
		async with self._lock:
			self._pending.creates[temp_id] = optimistic
			self._apply()

		try:
			row = await self._backend.create_spot(spot_to_payload(optimistic))
			confirmed = spot_from_record(row)
		except SpotError:
			async with self._lock:
				self._pending.creates.pop(temp_id, None)
				self._pending.deletes.discard(temp_id)
				self._pending.replies.pop(temp_id, None)
				self._apply()
			obs_metrics.inc_spot_created("failed")
			self._sink.show("Failed to create Spot. There was an error creating your Spot.", Severity.ERROR)
			raise

		async with self._lock:
			self._pending.confirmed[temp_id] = confirmed
			queued_replies = [replace(reply, spot_id=confirmed.id) for reply in self._pending.replies.pop(temp_id, [])]
			if queued_replies:
				self._pending.replies.setdefault(confirmed.id, []).extend(queued_replies)
			queued_delete = temp_id in self._pending.deletes
			restore: Dict[str, Tuple[Spot, Spot]] = {}
			if queued_delete:
				self._pending.deletes.discard(temp_id)
				self._pending.deletes.add(confirmed.id)
				restore[temp_id] = (self._pending.creates.pop(temp_id), self._pending.confirmed.pop(temp_id))
			self._apply()
		obs_metrics.inc_spot_created("ok")
		logger.info("spot confirmed temp_id=%s spot_id=%s", temp_id, confirmed.id)
		self._sink.show("Spot Created. Your Spot has been placed successfully.", Severity.INFO)

		if queued_delete:
			await self._send_delete(confirmed.id, restore=restore)
			return confirmed
		for reply in queued_replies:
			try:
				await self._send_reply(reply)
			except SpotError as exc:
				logger.warning("queued reply %s for spot_id=%s failed reason=%s", reply.id, confirmed.id, exc.reason)
		return confirmed

	async def append_reply(self, spot_id: str, message: str) -> Optional[SpotReply]:
		"""Append a reply; returns None when the Spot is already gone."""
		if not isinstance(message, str) or not message.strip():
			raise MalformedSpot("message_empty")
		async with self._lock:
			target = self._pending.resolve(spot_id)
			if not any(spot.id == target for spot in self._spots):
				obs_metrics.inc_spot_mutation("reply", "already_gone")
				logger.info("reply target spot_id=%s no longer present", target)
				return None
			reply = SpotReply(
				id=str(uuid4()),
				spot_id=target,
				user_id=self._viewer_id,
				message=message.strip(),
				created_at=lifecycle.utcnow(),
			)
			self._pending.replies.setdefault(target, []).append(reply)
			self._apply()

		if is_temp_id(target):
			# Sent once the create is confirmed.
			return reply
		await self._send_reply(reply)
		return reply

	def _drop_reply(self, reply: SpotReply) -> None:
		queued = self._pending.replies.get(reply.spot_id)
		if not queued:
			return
		left = [item for item in queued if item.id != reply.id]
		if left:
			self._pending.replies[reply.spot_id] = left
		else:
			self._pending.replies.pop(reply.spot_id, None)

	async def _send_reply(self, reply: SpotReply) -> None:
		try:
			await self._backend.append_reply(reply.spot_id, reply.to_dict())
		except NotFound:
			async with self._lock:
				self._drop_reply(reply)
				self._apply()
			obs_metrics.inc_spot_mutation("reply", "already_gone")
			return
		except SpotError:
			async with self._lock:
				self._drop_reply(reply)
				self._apply()
			obs_metrics.inc_spot_mutation("reply", "failed")
			self._sink.show("Failed to send reply.", Severity.ERROR)
			raise
		obs_metrics.inc_spot_mutation("reply", "ok")
		self._sink.show("Reply Sent. Your reply has been sent successfully.", Severity.INFO)

	async def delete(self, spot_id: str) -> None:
		"""Delete a Spot; deleting one that is already gone is a no-op."""
		async with self._lock:
			target = self._pending.resolve(spot_id)
			known = any(spot.id == target for spot in self._spots)
			if not known and target not in self._pending.creates:
				obs_metrics.inc_spot_mutation("delete", "already_gone")
				return
			self._pending.deletes.add(target)
			restore: Dict[str, Tuple[Spot, Spot]] = {}
			if not is_temp_id(target):
				for temp_id, server in list(self._pending.confirmed.items()):
					if server.id == target:
						restore[temp_id] = (self._pending.creates.pop(temp_id), self._pending.confirmed.pop(temp_id))
			self._apply()

		if is_temp_id(target):
			# Sent once the create is confirmed.
			return
		await self._send_delete(target, restore=restore)

	async def _send_delete(self, target: str, *, restore: Dict[str, Tuple[Spot, Spot]]) -> None:
		try:
			await self._backend.delete_spot(target)
		except NotFound:
			obs_metrics.inc_spot_mutation("delete", "already_gone")
			return
		except SpotError:
			async with self._lock:
				self._pending.deletes.discard(target)
				for temp_id, (optimistic, server) in restore.items():
					self._pending.creates[temp_id] = optimistic
					self._pending.confirmed[temp_id] = server
				self._apply()
			obs_metrics.inc_spot_mutation("delete", "failed")
			self._sink.show("Failed to delete Spot.", Severity.ERROR)
			raise
		obs_metrics.inc_spot_mutation("delete", "ok")
