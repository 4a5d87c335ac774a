"""Parsing boundary between raw storage rows and canonical Spot values."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Tuple

from spotit.domain.spots.exceptions import InvalidCoordinate, InvalidDuration, MalformedSpot
from spotit.domain.spots.geo import validate_coordinate, validate_radius
from spotit.domain.spots.lifecycle import as_utc, compute_expiry, validate_duration
from spotit.domain.spots.models import Spot, SpotKind, SpotReply
from spotit.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def _parse_ts(value: Any, field_name: str) -> datetime:
	if isinstance(value, datetime):
		return as_utc(value)
	if isinstance(value, str) and value:
		try:
			return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
		except ValueError as exc:
			raise MalformedSpot(f"{field_name}_unparseable") from exc
	raise MalformedSpot(f"{field_name}_missing")


def _require_text(record: Mapping[str, Any], key: str) -> str:
	value = record.get(key)
	if value is None or str(value).strip() == "":
		raise MalformedSpot(f"{key}_missing")
	return str(value)


def _load_json_list(value: Any, field_name: str) -> list:
	# asyncpg hands json/json_agg columns back as text
	if value is None:
		return []
	if isinstance(value, str):
		try:
			value = json.loads(value)
		except json.JSONDecodeError as exc:
			raise MalformedSpot(f"{field_name}_unparseable") from exc
	if not isinstance(value, (list, tuple)):
		raise MalformedSpot(f"{field_name}_not_list")
	return list(value)


def reply_from_record(record: Mapping[str, Any], *, spot_id: str | None = None) -> SpotReply:
	message = _require_text(record, "message")
	return SpotReply(
		id=_require_text(record, "id"),
		spot_id=str(record.get("spot_id") or spot_id or ""),
		user_id=_require_text(record, "user_id"),
		message=message,
		created_at=_parse_ts(record.get("created_at"), "created_at"),
	)


def spot_from_record(record: Mapping[str, Any]) -> Spot:
	"""Build a Spot from an untyped storage row, rejecting anything malformed."""
	spot_id = _require_text(record, "id")
	message = _require_text(record, "message")
	location = validate_coordinate(record.get("latitude"), record.get("longitude"))
	radius_m = validate_radius(record.get("radius_m"))
	duration_raw = record.get("duration_hours")
	if isinstance(duration_raw, float) and duration_raw.is_integer():
		duration_raw = int(duration_raw)
	duration_hours = validate_duration(duration_raw)
	created_at = _parse_ts(record.get("created_at"), "created_at")
	if record.get("expires_at") is not None:
		expires_at = _parse_ts(record.get("expires_at"), "expires_at")
	else:
		expires_at = compute_expiry(created_at, duration_hours)
	if expires_at < created_at:
		raise MalformedSpot("expires_before_created")
	replies: List[SpotReply] = [
		reply_from_record(item, spot_id=spot_id) for item in _load_json_list(record.get("replies"), "replies")
	]
	try:
		kind = SpotKind(record.get("kind") or SpotKind.MESSAGE.value)
	except ValueError as exc:
		raise MalformedSpot("kind_unknown") from exc
	return Spot(
		id=spot_id,
		creator_id=_require_text(record, "creator_id"),
		message=message,
		location=location,
		radius_m=radius_m,
		duration_hours=duration_hours,
		created_at=created_at,
		expires_at=expires_at,
		recipients=frozenset(str(r) for r in _load_json_list(record.get("recipients"), "recipients")),
		replies=tuple(replies),
		kind=kind,
	)


def parse_snapshot(rows: Iterable[Mapping[str, Any]]) -> Tuple[Spot, ...]:
	"""Parse a fetch result, logging and skipping rows that fail validation."""
	spots: List[Spot] = []
	for row in rows:
		try:
			spots.append(spot_from_record(row))
		except (InvalidCoordinate, InvalidDuration, MalformedSpot) as exc:
			obs_metrics.inc_malformed_row(exc.reason)
			logger.warning("rejected malformed spot row id=%s reason=%s", row.get("id"), exc.reason)
	return tuple(spots)


def spot_to_payload(spot: Spot) -> dict:
	"""Row shape sent to the storage collaborator on create."""
	payload = spot.to_dict()
	payload.pop("id")
	payload.pop("replies")
	return payload


__all__ = [
	"parse_snapshot",
	"reply_from_record",
	"spot_from_record",
	"spot_to_payload",
]
