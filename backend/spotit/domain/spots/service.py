"""Engine facade tying the Spot components together for one viewer."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple

from spotit.domain.social.models import BlockList
from spotit.domain.spots import lifecycle
from spotit.domain.spots.exceptions import NotFound
from spotit.domain.spots.geo import validate_coordinate
from spotit.domain.spots.models import Location, Notification, Spot, SpotKind, SpotReply
from spotit.domain.spots.notifications import NotificationInbox, NotificationScheduler, SurfaceCallback
from spotit.domain.spots.sink import LoggingSink, NotificationSink
from spotit.domain.spots.storage import SpotBackend
from spotit.domain.spots.sync import SpotStore
from spotit.domain.spots.visibility import Order, ViewMode, visible_spots

logger = logging.getLogger(__name__)


class SpotEngine:
	def __init__(
		self,
		backend: SpotBackend,
		viewer_id: str,
		*,
		sink: Optional[NotificationSink] = None,
		blocks: Optional[BlockList] = None,
		clock: Callable[[], datetime] = lifecycle.utcnow,
		on_surface: Optional[SurfaceCallback] = None,
		poll_interval: Optional[float] = None,
	) -> None:
		self.viewer_id = viewer_id
		self.sink: NotificationSink = sink or LoggingSink()
		self.store = SpotStore(backend, viewer_id, sink=self.sink)
		self.blocks = blocks or BlockList()
		self.viewer_location: Optional[Location] = None
		self._clock = clock
		self.inbox = NotificationInbox(viewer_id)
		self.scheduler = NotificationScheduler(
			self.inbox,
			self.live_spots,
			on_surface=on_surface,
			interval=poll_interval,
		)

	# Map surface ---------------------------------------------------------

	def select_point(self, latitude: float, longitude: float) -> Location:
		"""Validate a point picked on the map as the location of a new Spot."""
		return validate_coordinate(latitude, longitude)

	def update_location(self, latitude: float, longitude: float) -> Location:
		self.viewer_location = validate_coordinate(latitude, longitude)
		return self.viewer_location

	def visible(self, mode: ViewMode = ViewMode.LIVE, *, order: Order = "newest") -> Tuple[Spot, ...]:
		return visible_spots(
			self.store.spots,
			self.viewer_id,
			self._clock(),
			self.blocks.snapshot(),
			viewer_location=self.viewer_location,
			mode=mode,
			order=order,
		)

	def live_spots(self) -> Tuple[Spot, ...]:
		return self.visible(ViewMode.LIVE)

	def geofence(self, spot_id: str) -> Tuple[Location, float]:
		spot = self.store.get(spot_id)
		if spot is None:
			raise NotFound("spot_missing")
		return spot.location, spot.radius_m

	# Spot lifecycle ------------------------------------------------------

	async def refresh(self) -> Tuple[Spot, ...]:
		return await self.store.refresh()

	async def create_spot(
		self,
		*,
		message: str,
		location: Location,
		radius_m: float = lifecycle.DEFAULT_RADIUS_M,
		duration_hours: int = lifecycle.DEFAULT_DURATION_HOURS,
		recipients: Iterable[str] = (),
		kind: SpotKind = SpotKind.MESSAGE,
	) -> Spot:
		return await self.store.create(
			message=message,
			location=location,
			radius_m=radius_m,
			duration_hours=duration_hours,
			recipients=recipients,
			kind=kind,
		)

	async def reply(self, spot_id: str, message: str) -> Optional[SpotReply]:
		return await self.store.append_reply(spot_id, message)

	async def delete_spot(self, spot_id: str) -> None:
		await self.store.delete(spot_id)

	# Blocks --------------------------------------------------------------

	def block(self, user_id: str) -> bool:
		if user_id == self.viewer_id:
			return False
		changed = self.blocks.block(user_id)
		if changed:
			logger.info("viewer blocked creator user_id=%s", user_id)
		return changed

	def unblock(self, user_id: str) -> bool:
		return self.blocks.unblock(user_id)

	# Notifications -------------------------------------------------------

	def next_notification(self) -> Optional[Tuple[Spot, Notification]]:
		notification = self.scheduler.tick()
		if notification is None:
			return None
		assert self.scheduler.active_display is not None
		return self.scheduler.active_display, notification

	def open_spot(self, spot_id: str) -> Spot:
		spot = self.store.get(spot_id)
		if spot is None:
			raise NotFound("spot_missing")
		self.scheduler.show(spot)
		return spot

	def dismiss(self) -> None:
		self.scheduler.dismiss()

	def start(self) -> None:
		self.scheduler.start()

	async def stop(self) -> None:
		await self.scheduler.stop()
