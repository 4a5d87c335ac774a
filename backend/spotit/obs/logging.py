"""JSON log output with request context and privacy scrubbing.

Every record carries the service identity plus whatever request context is
bound (request id, viewer, spot). Credentials are replaced outright;
coordinates are coarsened to roughly a kilometre so logs never pin a viewer
to a street corner.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from spotit.settings import settings

_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	"request_id": ContextVar("spotit_request_id", default=None),
	"user_id": ContextVar("spotit_user_id", default=None),
	"spot_id": ContextVar("spotit_spot_id", default=None),
}

_ROOT_LOGGER = "spotit"

_SECRET_KEYS = ("password", "token", "secret", "authorization", "cookie", "email")
_COORDINATE_KEYS = frozenset({"lat", "lon", "latitude", "longitude"})
_COORDINATE_PLACES = 2
_MAX_TEXT = 200

# Attributes every LogRecord has; anything else was passed through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Bind request-scoped fields; returns the tokens ``reset_context`` needs."""
	tokens: Dict[str, Token] = {}
	for name, value in fields.items():
		if value is None:
			continue
		var = _CONTEXT.get(name)
		if var is None:
			raise KeyError(f"unknown log context field: {name}")
		tokens[name] = var.set(value)
	return tokens


def reset_context(tokens: Mapping[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT[name].reset(token)


def current_request_id(default: str = "unknown") -> str:
	return _CONTEXT["request_id"].get() or default


def scrub(key: str, value: Any) -> Any:
	"""Make one ``extra`` field safe to emit."""
	lowered = key.lower()
	if any(marker in lowered for marker in _SECRET_KEYS):
		return "[redacted]"
	if lowered in _COORDINATE_KEYS and isinstance(value, (int, float)) and not isinstance(value, bool):
		return round(float(value), _COORDINATE_PLACES)
	if isinstance(value, str) and len(value) > _MAX_TEXT:
		return value[:_MAX_TEXT] + "..."
	if isinstance(value, Mapping):
		return {str(k): scrub(str(k), v) for k, v in value.items()}
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
		}
		if settings.git_commit:
			payload["commit"] = settings.git_commit
		for name, var in _CONTEXT.items():
			value = var.get()
			if value:
				payload[name] = value
		for key, value in vars(record).items():
			if key not in _RECORD_ATTRS and key not in payload:
				payload[key] = scrub(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, default=str)


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of INFO records; other levels always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		return random.random() < settings.obs_log_sampling_rate_info


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _ROOT_LOGGER)
