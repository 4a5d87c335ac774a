from datetime import timedelta

import pytest

from spotit.domain.spots import lifecycle
from spotit.domain.spots.exceptions import InvalidCoordinate, NotFound
from spotit.domain.spots.models import Location
from spotit.domain.spots.service import SpotEngine
from spotit.domain.spots.storage import MemorySpotBackend
from spotit.domain.spots.visibility import ViewMode

CAFE = Location(45.5048, -73.5772)


def _engine(backend, viewer, now):
    return SpotEngine(backend, viewer, clock=lambda: now)


@pytest.mark.asyncio
async def test_block_hides_spot_on_next_query(make_row, t0):
    backend = MemorySpotBackend([make_row("srv-1", "alice", recipients=["bob"])])
    engine = _engine(backend, "bob", t0 + timedelta(hours=1))
    await engine.refresh()
    assert [s.id for s in engine.visible()] == ["srv-1"]

    assert engine.block("alice")
    assert engine.visible() == ()
    assert engine.unblock("alice")
    assert [s.id for s in engine.visible()] == ["srv-1"]


@pytest.mark.asyncio
async def test_viewer_cannot_block_themselves(t0):
    engine = _engine(MemorySpotBackend(), "bob", t0)
    assert engine.block("bob") is False
    assert "bob" not in engine.blocks


@pytest.mark.asyncio
async def test_spot_expires_for_recipient_after_a_day(make_row, t0):
    backend = MemorySpotBackend([make_row("srv-1", "alice", recipients=["bob"], duration_hours=24)])
    now = {"value": t0 + timedelta(hours=23)}
    engine = SpotEngine(backend, "bob", clock=lambda: now["value"])
    await engine.refresh()
    assert len(engine.visible()) == 1
    now["value"] = t0 + timedelta(hours=25)
    assert engine.visible() == ()


@pytest.mark.asyncio
async def test_geofence_only_visibility_follows_viewer_location(make_row, t0):
    backend = MemorySpotBackend([make_row("srv-1", "alice", radius_m=100)])
    engine = _engine(backend, "carol", t0 + timedelta(minutes=5))
    await engine.refresh()
    assert engine.visible() == ()
    engine.update_location(CAFE.latitude, CAFE.longitude + 0.0005)
    assert [s.id for s in engine.visible()] == ["srv-1"]
    engine.update_location(CAFE.latitude + 0.01, CAFE.longitude)
    assert engine.visible() == ()


@pytest.mark.asyncio
async def test_archive_lists_own_expired_spots(make_row, t0):
    backend = MemorySpotBackend(
        [
            make_row("srv-1", "alice", duration_hours=12),
            make_row("srv-2", "bob", recipients=["alice"]),
        ]
    )
    engine = _engine(backend, "alice", t0 + timedelta(days=2))
    await engine.refresh()
    assert engine.visible(ViewMode.LIVE) == ()
    assert [s.id for s in engine.visible(ViewMode.ARCHIVE)] == ["srv-1"]


@pytest.mark.asyncio
async def test_create_through_engine_uses_selected_point():
    engine = SpotEngine(MemorySpotBackend(), "alice")
    point = engine.select_point(45.5, -73.6)
    spot = await engine.create_spot(message="meet here", location=point, duration_hours=lifecycle.FOREVER_HOURS)
    assert spot.location == point
    assert engine.geofence(spot.id) == (point, 100.0)
    with pytest.raises(InvalidCoordinate):
        engine.select_point(91, 0)


@pytest.mark.asyncio
async def test_geofence_for_unknown_spot(t0):
    engine = _engine(MemorySpotBackend(), "alice", t0)
    with pytest.raises(NotFound):
        engine.geofence("srv-404")


@pytest.mark.asyncio
async def test_notifications_surface_once_per_spot(make_row, t0):
    backend = MemorySpotBackend(
        [
            make_row("srv-1", "alice", recipients=["bob"]),
            make_row("srv-2", "carol", recipients=["bob"], created_at=t0 + timedelta(minutes=1)),
        ]
    )
    engine = _engine(backend, "bob", t0 + timedelta(hours=1))
    await engine.refresh()

    first = engine.next_notification()
    assert first is not None
    assert engine.next_notification() is None
    engine.dismiss()
    second = engine.next_notification()
    assert second is not None
    assert {first[0].id, second[0].id} == {"srv-1", "srv-2"}
    engine.dismiss()
    assert engine.next_notification() is None
    assert engine.inbox.unread_count() == 0


@pytest.mark.asyncio
async def test_opening_spot_from_map_suppresses_popups(make_row, t0):
    backend = MemorySpotBackend([make_row("srv-1", "alice", recipients=["bob"])])
    engine = _engine(backend, "bob", t0 + timedelta(hours=1))
    await engine.refresh()
    engine.open_spot("srv-1")
    assert engine.next_notification() is None
    with pytest.raises(NotFound):
        engine.open_spot("srv-404")
