import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from spotit.domain.spots import lifecycle
from spotit.domain.spots.exceptions import BackendError, NotFound, SyncFailed, Unauthenticated
from spotit.domain.spots.models import Location, SpotReply
from spotit.domain.spots.sink import Severity
from spotit.domain.spots.storage import MemorySpotBackend
from spotit.domain.spots.sync import PendingState, SpotStore, prune, reconcile

HERE = Location(45.5048, -73.5772)


class RecordingSink:
    def __init__(self):
        self.messages = []

    def show(self, message, severity):
        self.messages.append((message, severity))


class GatedFetchBackend(MemorySpotBackend):
    """Each fetch waits on its own gate and returns the rows queued for it."""

    def __init__(self):
        super().__init__()
        self.queued = []
        self.gates = []

    async def fetch_spots(self, viewer_id):
        rows = self.queued.pop(0)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        if isinstance(rows, Exception):
            raise rows
        return rows


class SlowCreateBackend(MemorySpotBackend):
    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def create_spot(self, payload):
        await self.release.wait()
        return await super().create_spot(payload)


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


def _spot(spot_id, creator_id="alice", *, now, **kwargs):
    spot = lifecycle.new_spot(creator_id=creator_id, message="hello", location=HERE, now=now, **kwargs)
    return replace(spot, id=spot_id)


def _reply(reply_id, spot_id, now):
    return SpotReply(id=reply_id, spot_id=spot_id, user_id="bob", message="hi", created_at=now)


def test_confirmed_create_appears_exactly_once(t0):
    optimistic = _spot("tmp-1", now=t0)
    server = replace(optimistic, id="srv-42")
    pending = PendingState(creates={"tmp-1": optimistic}, confirmed={"tmp-1": server})
    assert [s.id for s in reconcile([], pending)] == ["srv-42"]
    assert [s.id for s in reconcile([server], pending)] == ["srv-42"]


def test_unconfirmed_create_is_shown_under_temp_id(t0):
    optimistic = _spot("tmp-1", now=t0)
    pending = PendingState(creates={"tmp-1": optimistic})
    assert reconcile([], pending) == (optimistic,)


def test_reconcile_is_idempotent_and_prune_preserves_result(t0):
    remote = [_spot("srv-1", now=t0), _spot("srv-2", now=t0 + timedelta(minutes=1))]
    optimistic = _spot("tmp-1", now=t0 + timedelta(minutes=2))
    pending = PendingState(
        creates={"tmp-1": optimistic},
        confirmed={"tmp-1": replace(optimistic, id="srv-3")},
        deletes={"srv-1"},
        replies={"srv-2": [_reply("r1", "srv-2", t0)]},
    )
    first = reconcile(remote, pending)
    assert reconcile(remote, pending) == first
    assert reconcile(remote, prune(remote, pending)) == first
    assert [s.id for s in first] == ["srv-3", "srv-2"]


def test_pending_delete_hides_spot_until_remote_drops_it(t0):
    remote = [_spot("srv-1", now=t0)]
    pending = PendingState(deletes={"srv-1"})
    assert reconcile(remote, pending) == ()
    assert prune(remote, pending).deletes == {"srv-1"}
    assert prune([], pending).deletes == set()


def test_replies_are_deduplicated_by_id(t0):
    landed = _reply("r1", "srv-1", t0)
    remote = [replace(_spot("srv-1", now=t0), replies=(landed,))]
    pending = PendingState(replies={"srv-1": [landed, _reply("r2", "srv-1", t0)]})
    merged = reconcile(remote, pending)
    assert [r.id for r in merged[0].replies] == ["r1", "r2"]
    assert [r.id for r in prune(remote, pending).replies["srv-1"]] == ["r2"]


def test_replies_for_temp_spot_follow_the_confirmed_id(t0):
    optimistic = _spot("tmp-1", now=t0)
    pending = PendingState(
        creates={"tmp-1": optimistic},
        confirmed={"tmp-1": replace(optimistic, id="srv-9")},
        replies={"tmp-1": [_reply("r1", "tmp-1", t0)]},
    )
    merged = reconcile([], pending)
    assert merged[0].id == "srv-9"
    assert merged[0].replies[0].spot_id == "srv-9"


@pytest.mark.asyncio
async def test_create_then_refresh_yields_single_server_spot():
    backend = MemorySpotBackend()
    sink = RecordingSink()
    store = SpotStore(backend, "alice", sink=sink)
    spot = await store.create(message="hello", location=HERE)
    assert spot.id == "srv-1"
    assert [s.id for s in store.spots] == ["srv-1"]
    await store.refresh()
    assert [s.id for s in store.spots] == ["srv-1"]
    assert store.pending.is_empty()
    assert sink.messages[-1][1] is Severity.INFO


@pytest.mark.asyncio
async def test_failed_create_rolls_back_and_notifies():
    backend = MemorySpotBackend()
    backend.available = False
    sink = RecordingSink()
    store = SpotStore(backend, "alice", sink=sink)
    with pytest.raises(BackendError):
        await store.create(message="hello", location=HERE)
    assert store.spots == ()
    assert store.pending.is_empty()
    assert sink.messages == [("Failed to create Spot. There was an error creating your Spot.", Severity.ERROR)]


@pytest.mark.asyncio
async def test_refresh_failure_serves_last_good_snapshot(make_row):
    backend = MemorySpotBackend([make_row("srv-1", "alice")])
    sink = RecordingSink()
    store = SpotStore(backend, "alice", sink=sink)
    await store.refresh()
    backend.available = False
    with pytest.raises(SyncFailed) as excinfo:
        await store.refresh()
    assert [s.id for s in excinfo.value.snapshot] == ["srv-1"]
    assert [s.id for s in store.spots] == ["srv-1"]
    assert sink.messages[-1][1] is Severity.ERROR


@pytest.mark.asyncio
async def test_unauthenticated_fetch_is_not_masked():
    class LockedOut(MemorySpotBackend):
        async def fetch_spots(self, viewer_id):
            raise Unauthenticated()

    store = SpotStore(LockedOut(), "alice")
    with pytest.raises(Unauthenticated):
        await store.refresh()


@pytest.mark.asyncio
async def test_latest_refresh_wins_even_if_it_returns_first(make_row):
    backend = GatedFetchBackend()
    backend.queued = [[make_row("srv-old", "alice")], [make_row("srv-new", "alice")]]
    store = SpotStore(backend, "alice")

    first = asyncio.create_task(store.refresh())
    await _settle()
    second = asyncio.create_task(store.refresh())
    await _settle()

    backend.gates[1].set()
    await second
    backend.gates[0].set()
    await first

    assert [s.id for s in store.spots] == ["srv-new"]


@pytest.mark.asyncio
async def test_stale_failure_after_newer_success_is_discarded(make_row):
    backend = GatedFetchBackend()
    backend.queued = [BackendError(), [make_row("srv-1", "alice")]]
    sink = RecordingSink()
    store = SpotStore(backend, "alice", sink=sink)

    first = asyncio.create_task(store.refresh())
    await _settle()
    second = asyncio.create_task(store.refresh())
    await _settle()

    backend.gates[1].set()
    await second
    backend.gates[0].set()
    result = await first

    assert [s.id for s in result] == ["srv-1"]
    assert sink.messages == []


@pytest.mark.asyncio
async def test_delete_of_missing_spot_is_a_no_op(make_row):
    backend = MemorySpotBackend([make_row("srv-1", "alice")])
    store = SpotStore(backend, "alice")
    await store.refresh()
    await backend.delete_spot("srv-1")
    await store.delete("srv-1")
    assert store.spots == ()
    await store.delete("srv-1")
    await store.delete("never-existed")


@pytest.mark.asyncio
async def test_failed_delete_restores_spot(make_row):
    backend = MemorySpotBackend([make_row("srv-1", "alice")])
    sink = RecordingSink()
    store = SpotStore(backend, "alice", sink=sink)
    await store.refresh()
    backend.available = False
    with pytest.raises(BackendError):
        await store.delete("srv-1")
    assert [s.id for s in store.spots] == ["srv-1"]
    assert sink.messages[-1] == ("Failed to delete Spot.", Severity.ERROR)


@pytest.mark.asyncio
async def test_deleting_a_just_created_spot_stays_deleted():
    backend = MemorySpotBackend()
    store = SpotStore(backend, "alice")
    spot = await store.create(message="hello", location=HERE)
    await store.delete(spot.id)
    assert store.spots == ()
    await store.refresh()
    assert store.spots == ()


@pytest.mark.asyncio
async def test_reply_is_sent_and_survives_refresh(make_row):
    backend = MemorySpotBackend([make_row("srv-1", "bob", recipients=["alice"])])
    store = SpotStore(backend, "alice")
    await store.refresh()
    reply = await store.append_reply("srv-1", "on my way")
    assert reply is not None
    await store.refresh()
    assert [r.id for r in store.get("srv-1").replies] == [reply.id]
    assert store.pending.is_empty()


@pytest.mark.asyncio
async def test_reply_to_vanished_spot_returns_none(make_row):
    backend = MemorySpotBackend([make_row("srv-1", "bob", recipients=["alice"])])
    store = SpotStore(backend, "alice")
    assert await store.append_reply("srv-1", "hello?") is None

    await store.refresh()
    await backend.delete_spot("srv-1")
    reply = await store.append_reply("srv-1", "still there?")
    assert reply is not None
    assert store.get("srv-1").replies == ()


@pytest.mark.asyncio
async def test_reply_on_unconfirmed_spot_is_sent_after_confirm():
    backend = SlowCreateBackend()
    store = SpotStore(backend, "alice")
    task = asyncio.create_task(store.create(message="hello", location=HERE))
    await _settle()

    temp_id = store.spots[0].id
    assert temp_id.startswith("tmp-")
    reply = await store.append_reply(temp_id, "first!")
    assert store.spots[0].replies == (reply,)

    backend.release.set()
    confirmed = await task
    rows = await backend.fetch_spots("alice")
    assert [r["id"] for r in rows[0]["replies"]] == [reply.id]
    assert store.get(temp_id).id == confirmed.id


@pytest.mark.asyncio
async def test_delete_on_unconfirmed_spot_is_sent_after_confirm():
    backend = SlowCreateBackend()
    store = SpotStore(backend, "alice")
    task = asyncio.create_task(store.create(message="hello", location=HERE))
    await _settle()

    temp_id = store.spots[0].id
    await store.delete(temp_id)
    assert store.spots == ()

    backend.release.set()
    await task
    assert await backend.fetch_spots("alice") == []
    await store.refresh()
    assert store.spots == ()


@pytest.mark.asyncio
async def test_delete_not_found_from_backend_counts_as_done(make_row):
    class AlreadyGone(MemorySpotBackend):
        async def delete_spot(self, spot_id):
            raise NotFound("spot_missing")

    backend = AlreadyGone([make_row("srv-1", "alice")])
    store = SpotStore(backend, "alice")
    await store.refresh()
    await store.delete("srv-1")
    assert store.spots == ()
