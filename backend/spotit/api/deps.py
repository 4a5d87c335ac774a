"""Request dependencies: the session store and the per-viewer engine."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import Depends

from spotit.domain.spots.service import SpotEngine
from spotit.domain.spots.storage import SpotBackend, build_backend
from spotit.infra.session import SessionStore
from spotit.obs import logging as obs_logging
from spotit.settings import settings

logger = logging.getLogger(__name__)

_backend: Optional[SpotBackend] = None
_engines: Dict[str, SpotEngine] = {}
_session_store = SessionStore()


def get_backend() -> SpotBackend:
	global _backend
	if _backend is None:
		_backend = build_backend(settings.storage_backend)
		logger.info("spot backend ready kind=%s", settings.storage_backend)
	return _backend


async def set_backend(backend: Optional[SpotBackend]) -> None:
	"""Swap the storage collaborator; existing engines are stopped and dropped."""
	global _backend
	await shutdown()
	_backend = backend


def get_session_store() -> SessionStore:
	return _session_store


async def get_engine(session: SessionStore = Depends(get_session_store)) -> SpotEngine:
	"""Engine for the signed-in viewer; `POST /notifications/next` drives its ticks."""
	viewer_id = await session.current_user()
	obs_logging.bind_context(user_id=viewer_id)
	engine = _engines.get(viewer_id)
	if engine is None:
		engine = SpotEngine(get_backend(), viewer_id)
		_engines[viewer_id] = engine
	return engine


async def shutdown() -> None:
	engines = list(_engines.values())
	_engines.clear()
	for engine in engines:
		await engine.stop()
