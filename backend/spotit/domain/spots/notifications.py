"""Spot notifications and the polling loop that surfaces them."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from spotit.domain.spots.lifecycle import utcnow
from spotit.domain.spots.models import Notification, Spot
from spotit.obs import metrics as obs_metrics
from spotit.settings import settings

logger = logging.getLogger(__name__)

SurfaceCallback = Callable[[Spot, Notification], None]


class NotificationInbox:
    """Notifications for one viewer; at most one per Spot, never deleted."""

    def __init__(self, viewer_id: str) -> None:
        self._viewer_id = viewer_id
        self._items: List[Notification] = []
        self._notified: Set[str] = set()

    @property
    def items(self) -> Tuple[Notification, ...]:
        return tuple(self._items)

    def add(self, notification: Notification) -> bool:
        if notification.spot_id in self._notified:
            return False
        self._notified.add(notification.spot_id)
        self._items.append(notification)
        return True

    def observe(self, visible: Iterable[Spot], now: Optional[datetime] = None) -> List[Notification]:
        """Create notifications for Spots that just became visible to the viewer."""
        received_at = now or utcnow()
        created: List[Notification] = []
        for spot in visible:
            if spot.creator_id == self._viewer_id or spot.id in self._notified:
                continue
            notification = Notification(id=str(uuid4()), spot_id=spot.id, received_at=received_at)
            self.add(notification)
            created.append(notification)
        return created

    def unread_count(self) -> int:
        return sum(1 for item in self._items if not item.read)


def select_next(
    notifications: Iterable[Notification],
    visible_spots: Sequence[Spot],
    active_display: Optional[Spot],
) -> Optional[Notification]:
    """Pick the earliest unread notification for a visible Spot and mark it read.

    Nothing is selected while a Spot is on screen. Selection and the read
    flip happen in one synchronous step, so repeated ticks never deliver the
    same notification twice.
    """
    if active_display is not None:
        return None
    visible_ids = {spot.id for spot in visible_spots}
    candidates = [item for item in notifications if not item.read and item.spot_id in visible_ids]
    if not candidates:
        return None
    chosen = min(candidates, key=lambda item: (item.received_at, item.id))
    chosen.mark_read()
    return chosen


class NotificationScheduler:
    """Polls the visible set and surfaces one Spot at a time."""

    def __init__(
        self,
        inbox: NotificationInbox,
        visible: Callable[[], Sequence[Spot]],
        *,
        on_surface: Optional[SurfaceCallback] = None,
        interval: Optional[float] = None,
    ) -> None:
        self._inbox = inbox
        self._visible = visible
        self._on_surface = on_surface
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self.active_display: Optional[Spot] = None

    @property
    def inbox(self) -> NotificationInbox:
        return self._inbox

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> Optional[Notification]:
        spots = self._visible()
        if self.active_display is not None and all(spot.id != self.active_display.id for spot in spots):
            logger.debug("displayed spot_id=%s no longer visible", self.active_display.id)
            self.active_display = None
        self._inbox.observe(spots)
        chosen = select_next(self._inbox.items, spots, self.active_display)
        if chosen is None:
            return None
        spot = next(spot for spot in spots if spot.id == chosen.spot_id)
        self.active_display = spot
        obs_metrics.inc_notification_surfaced()
        logger.debug("surfacing spot_id=%s notification_id=%s", spot.id, chosen.id)
        if self._on_surface is not None:
            self._on_surface(spot, chosen)
        return chosen

    def show(self, spot: Spot) -> None:
        """The viewer opened a Spot directly from the map."""
        self.active_display = spot

    def dismiss(self) -> None:
        self.active_display = None

    def start(self) -> None:
        if self.running:
            return
        if self._on_surface is None:
            logger.warning("notification poll not started: no surface callback")
            return
        self._task = asyncio.create_task(self._run(), name="spot-notification-poll")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        interval = max(0.05, float(self._interval or settings.notification_poll_seconds))
        while True:
            await asyncio.sleep(interval)
            try:
                self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:  # pragma: no cover
                logger.exception("notification poll tick failed")
