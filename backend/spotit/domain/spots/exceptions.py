"""Domain-level exceptions for the Spot lifecycle engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from spotit.domain.spots.models import Spot


class SpotError(Exception):
    """Base class for Spot engine errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class InvalidCoordinate(SpotError):
    reason = "invalid_coordinate"


class InvalidDuration(SpotError):
    reason = "invalid_duration"


class MalformedSpot(SpotError):
    """Raised for drafts or storage rows that cannot form a valid Spot."""

    reason = "malformed_spot"


class Unauthenticated(SpotError):
    reason = "unauthenticated"


class NotFound(SpotError):
    reason = "not_found"


class BackendError(SpotError):
    """The storage collaborator could not be reached or refused the request."""

    reason = "backend_unavailable"


class SyncFailed(SpotError):
    """A refresh failed; ``snapshot`` is the fallback set now being served."""

    reason = "sync_failed"

    def __init__(self, snapshot: Sequence["Spot"], reason: str | None = None) -> None:
        super().__init__(reason)
        self.snapshot = tuple(snapshot)
