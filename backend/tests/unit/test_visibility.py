from dataclasses import replace
from datetime import datetime, timedelta, timezone

from spotit.domain.spots import lifecycle
from spotit.domain.spots.models import Location
from spotit.domain.spots.visibility import ViewMode, is_visible, sort_spots, visible_spots

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
CAFE = Location(45.5048, -73.5772)
NEARBY = Location(45.5052, -73.5772)  # ~45 m north
ACROSS_TOWN = Location(45.5600, -73.5772)


def _spot(spot_id, creator_id, *, created_at=T0, duration_hours=24, recipients=(), radius_m=100, location=CAFE):
    spot = lifecycle.new_spot(
        creator_id=creator_id,
        message=f"{spot_id} says hi",
        location=location,
        radius_m=radius_m,
        duration_hours=duration_hours,
        recipients=recipients,
        now=created_at,
    )
    return replace(spot, id=spot_id)


def test_creator_and_recipient_see_spot_anywhere():
    spot = _spot("s1", "alice", recipients=["bob"])
    for viewer in ("alice", "bob"):
        assert visible_spots([spot], viewer, T0, viewer_location=ACROSS_TOWN) == (spot,)


def test_stranger_needs_to_be_inside_geofence():
    spot = _spot("s1", "alice")
    assert visible_spots([spot], "carol", T0) == ()
    assert visible_spots([spot], "carol", T0, viewer_location=ACROSS_TOWN) == ()
    assert visible_spots([spot], "carol", T0, viewer_location=NEARBY) == (spot,)


def test_expired_spot_disappears_from_live_view():
    spot = _spot("s1", "alice", duration_hours=24, recipients=["bob"])
    assert visible_spots([spot], "bob", T0 + timedelta(hours=23)) == (spot,)
    assert visible_spots([spot], "bob", T0 + timedelta(hours=24)) == ()
    assert visible_spots([spot], "alice", T0 + timedelta(hours=25)) == ()
    assert visible_spots([spot], "alice", T0 + timedelta(hours=25), mode=ViewMode.ARCHIVE) == (spot,)


def test_forever_spot_visible_a_thousand_years_later():
    spot = _spot("s1", "alice", duration_hours=lifecycle.FOREVER_HOURS, recipients=["bob"])
    later = T0 + timedelta(days=365 * 1000)
    assert visible_spots([spot], "bob", later) == (spot,)


def test_blocked_creator_hidden_even_from_recipient():
    spot = _spot("s1", "alice", recipients=["bob"])
    assert visible_spots([spot], "bob", T0, frozenset({"alice"})) == ()
    assert visible_spots([spot], "bob", T0, frozenset()) == (spot,)


def test_archive_shows_own_spots_including_expired():
    mine_old = _spot("s1", "alice", created_at=T0 - timedelta(days=3), duration_hours=12)
    mine_new = _spot("s2", "alice")
    theirs = _spot("s3", "bob", recipients=["alice"])
    result = visible_spots([mine_old, theirs, mine_new], "alice", T0, mode=ViewMode.ARCHIVE)
    assert result == (mine_new, mine_old)


def test_archive_accepts_plain_string_mode():
    spot = _spot("s1", "alice")
    assert visible_spots([spot], "alice", T0, mode="archive") == (spot,)


def test_newest_first_with_id_tiebreak():
    a = _spot("b-id", "alice", created_at=T0)
    b = _spot("a-id", "alice", created_at=T0)
    c = _spot("c-id", "alice", created_at=T0 + timedelta(minutes=5))
    assert [s.id for s in visible_spots([a, b, c], "alice", T0 + timedelta(minutes=10))] == ["c-id", "a-id", "b-id"]
    assert [s.id for s in sort_spots([a, b, c], "oldest")] == ["a-id", "b-id", "c-id"]


def test_is_visible_single_spot_checks():
    spot = _spot("s1", "alice")
    assert is_visible(spot, "alice", T0, frozenset())
    assert not is_visible(spot, "dave", T0, frozenset())
    assert is_visible(spot, "dave", T0, frozenset(), viewer_location=CAFE)


def test_results_are_not_cached_between_calls():
    spot = _spot("s1", "alice", recipients=["bob"])
    blocked = set()
    assert visible_spots([spot], "bob", T0, frozenset(blocked)) == (spot,)
    blocked.add("alice")
    assert visible_spots([spot], "bob", T0, frozenset(blocked)) == ()
