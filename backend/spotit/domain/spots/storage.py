"""Storage collaborator contract and its implementations.

Backends speak raw rows (plain mappings). Turning rows into Spots is the job
of ``spotit.domain.spots.records``.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import asyncpg

from spotit.domain.spots.exceptions import BackendError, NotFound
from spotit.infra.postgres import get_pool

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class SpotBackend(Protocol):
	async def fetch_spots(self, viewer_id: str) -> Sequence[Mapping[str, Any]]: ...

	async def create_spot(self, payload: Mapping[str, Any]) -> Mapping[str, Any]: ...

	async def append_reply(self, spot_id: str, reply: Mapping[str, Any]) -> None: ...

	async def delete_spot(self, spot_id: str) -> None: ...


class MemorySpotBackend:
	"""Process-local backend used in development and tests.

	Server ids are ``srv-<n>``. Setting ``available`` to False makes every call
	fail with ``BackendError`` the way an unreachable service would.
	"""

	def __init__(self, rows: Sequence[Mapping[str, Any]] = ()) -> None:
		self._rows: Dict[str, Row] = {}
		self._next_id = 1
		self.available = True
		for row in rows:
			self.seed(row)

	def seed(self, row: Mapping[str, Any]) -> Row:
		stored = copy.deepcopy(dict(row))
		stored.setdefault("replies", [])
		stored.setdefault("recipients", [])
		if not stored.get("id"):
			stored["id"] = self._allocate_id()
		self._rows[str(stored["id"])] = stored
		return copy.deepcopy(stored)

	def _allocate_id(self) -> str:
		spot_id = f"srv-{self._next_id}"
		self._next_id += 1
		return spot_id

	def _ensure_available(self) -> None:
		if not self.available:
			raise BackendError()

	async def fetch_spots(self, viewer_id: str) -> List[Row]:
		self._ensure_available()
		return [copy.deepcopy(row) for row in self._rows.values()]

	async def create_spot(self, payload: Mapping[str, Any]) -> Row:
		self._ensure_available()
		row = dict(payload)
		row.pop("id", None)
		return self.seed(row)

	async def append_reply(self, spot_id: str, reply: Mapping[str, Any]) -> None:
		self._ensure_available()
		row = self._rows.get(spot_id)
		if row is None:
			raise NotFound("spot_missing")
		if any(existing["id"] == reply["id"] for existing in row["replies"]):
			return
		row["replies"].append(dict(reply, spot_id=spot_id))

	async def delete_spot(self, spot_id: str) -> None:
		self._ensure_available()
		if self._rows.pop(spot_id, None) is None:
			raise NotFound("spot_missing")


SPOTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS spots (
	id TEXT PRIMARY KEY DEFAULT ('srv-' || gen_random_uuid()::text),
	creator_id TEXT NOT NULL,
	message TEXT NOT NULL,
	latitude DOUBLE PRECISION NOT NULL,
	longitude DOUBLE PRECISION NOT NULL,
	radius_m DOUBLE PRECISION NOT NULL CHECK (radius_m > 0),
	duration_hours INTEGER NOT NULL CHECK (duration_hours > 0),
	created_at TIMESTAMPTZ NOT NULL,
	expires_at TIMESTAMPTZ NOT NULL CHECK (expires_at >= created_at),
	recipients TEXT[] NOT NULL DEFAULT '{}',
	kind TEXT NOT NULL DEFAULT 'message',
	deleted_at TIMESTAMPTZ
);
CREATE INDEX IF NOT EXISTS idx_spots_expires_at ON spots(expires_at) WHERE deleted_at IS NULL;
CREATE TABLE IF NOT EXISTS spot_replies (
	seq BIGSERIAL,
	id TEXT PRIMARY KEY,
	spot_id TEXT NOT NULL REFERENCES spots(id),
	user_id TEXT NOT NULL,
	message TEXT NOT NULL,
	created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_spot_replies_spot_id ON spot_replies(spot_id, seq);
"""

_FETCH_SQL = """
SELECT s.id, s.creator_id, s.message, s.latitude, s.longitude, s.radius_m,
	s.duration_hours, s.created_at, s.expires_at, s.recipients, s.kind,
	COALESCE(
		(
			SELECT json_agg(
				json_build_object(
					'id', r.id, 'spot_id', r.spot_id, 'user_id', r.user_id,
					'message', r.message, 'created_at', r.created_at
				)
				ORDER BY r.seq
			)
			FROM spot_replies r
			WHERE r.spot_id = s.id
		),
		'[]'::json
	) AS replies
FROM spots s
WHERE s.deleted_at IS NULL
  AND (s.expires_at > NOW() OR s.creator_id = $1)
"""

_INSERT_SQL = """
INSERT INTO spots (creator_id, message, latitude, longitude, radius_m, duration_hours,
	created_at, expires_at, recipients, kind)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::text[], $10)
RETURNING id, creator_id, message, latitude, longitude, radius_m, duration_hours,
	created_at, expires_at, recipients, kind
"""

_TRANSPORT_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _ts(value: Any) -> datetime:
	if isinstance(value, datetime):
		return value
	return datetime.fromisoformat(str(value))


class PostgresSpotBackend:
	"""Backend over the ``spots`` and ``spot_replies`` tables.

	Deletes are soft (``deleted_at``); fetches return active Spots plus every
	Spot the viewer created so the archive view can show expired ones.
	"""

	def __init__(self, pool: Optional[asyncpg.pool.Pool] = None) -> None:
		self._pool = pool
		self._schema_ready = False

	async def _get_pool(self) -> asyncpg.pool.Pool:
		if self._pool is None:
			self._pool = await get_pool()
		return self._pool

	async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
		if self._schema_ready:
			return
		await conn.execute(SPOTS_SCHEMA)
		self._schema_ready = True

	async def fetch_spots(self, viewer_id: str) -> List[Row]:
		try:
			pool = await self._get_pool()
			async with pool.acquire() as conn:
				await self._ensure_schema(conn)
				rows = await conn.fetch(_FETCH_SQL, viewer_id)
		except _TRANSPORT_ERRORS as exc:
			logger.warning("fetch_spots failed: %s", exc.__class__.__name__)
			raise BackendError() from exc
		return [dict(row) for row in rows]

	async def create_spot(self, payload: Mapping[str, Any]) -> Row:
		try:
			pool = await self._get_pool()
			async with pool.acquire() as conn:
				await self._ensure_schema(conn)
				row = await conn.fetchrow(
					_INSERT_SQL,
					payload["creator_id"],
					payload["message"],
					payload["latitude"],
					payload["longitude"],
					payload["radius_m"],
					payload["duration_hours"],
					_ts(payload["created_at"]),
					_ts(payload["expires_at"]),
					list(payload.get("recipients") or []),
					payload.get("kind") or "message",
				)
		except _TRANSPORT_ERRORS as exc:
			logger.warning("create_spot failed: %s", exc.__class__.__name__)
			raise BackendError() from exc
		result = dict(row)
		result["replies"] = []
		return result

	async def append_reply(self, spot_id: str, reply: Mapping[str, Any]) -> None:
		try:
			pool = await self._get_pool()
			async with pool.acquire() as conn:
				await self._ensure_schema(conn)
				async with conn.transaction():
					exists = await conn.fetchrow(
						"SELECT 1 FROM spots WHERE id = $1 AND deleted_at IS NULL FOR UPDATE",
						spot_id,
					)
					if not exists:
						raise NotFound("spot_missing")
					await conn.execute(
						"""
						INSERT INTO spot_replies (id, spot_id, user_id, message, created_at)
						VALUES ($1, $2, $3, $4, $5)
						ON CONFLICT (id) DO NOTHING
						""",
						reply["id"],
						spot_id,
						reply["user_id"],
						reply["message"],
						_ts(reply["created_at"]),
					)
		except _TRANSPORT_ERRORS as exc:
			logger.warning("append_reply failed: %s", exc.__class__.__name__)
			raise BackendError() from exc

	async def delete_spot(self, spot_id: str) -> None:
		try:
			pool = await self._get_pool()
			async with pool.acquire() as conn:
				await self._ensure_schema(conn)
				status = await conn.execute(
					"UPDATE spots SET deleted_at = NOW() WHERE id = $1 AND deleted_at IS NULL",
					spot_id,
				)
		except _TRANSPORT_ERRORS as exc:
			logger.warning("delete_spot failed: %s", exc.__class__.__name__)
			raise BackendError() from exc
		if status.endswith(" 0"):
			raise NotFound("spot_missing")


def build_backend(kind: str) -> SpotBackend:
	if kind == "postgres":
		return PostgresSpotBackend()
	if kind == "memory":
		return MemorySpotBackend()
	raise ValueError(f"unknown storage backend: {kind}")
