"""Account/session marker kept in Redis.

The marker is the only piece of local state the client persists: a single
JSON document under ``settings.session_key``.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

from spotit.domain.spots.exceptions import Unauthenticated
from spotit.infra.password import hash_password, verify_password
from spotit.infra.redis import redis_client
from spotit.settings import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Account:
	id: str
	email: str
	username: str

	def to_dict(self) -> dict:
		return {"id": self.id, "email": self.email, "username": self.username}


class SessionStore:
	def __init__(self, key: Optional[str] = None) -> None:
		self._key = key or settings.session_key

	async def _load(self) -> Optional[dict]:
		raw = await redis_client.get(self._key)
		if not raw:
			return None
		try:
			data = json.loads(raw)
		except json.JSONDecodeError:
			logger.warning("discarding unreadable account marker")
			await redis_client.delete(self._key)
			return None
		return data if isinstance(data, dict) else None

	async def sign_up(self, email: str, password: str, username: str) -> Account:
		account = Account(
			id=f"user-{int(time.time() * 1000)}",
			email=email.strip().lower(),
			username=username.strip(),
		)
		marker = dict(account.to_dict(), password_hash=hash_password(password), signed_in=True)
		await redis_client.set(self._key, json.dumps(marker))
		logger.info("account created user_id=%s", account.id)
		return account

	async def sign_in(self, email: str, password: str) -> Account:
		data = await self._load()
		if not data or data.get("email") != email.strip().lower():
			raise Unauthenticated("user_not_found")
		if not verify_password(data.get("password_hash", ""), password):
			raise Unauthenticated("invalid_credentials")
		data["signed_in"] = True
		await redis_client.set(self._key, json.dumps(data))
		return Account(id=data["id"], email=data["email"], username=data.get("username", ""))

	async def sign_out(self) -> None:
		data = await self._load()
		if not data:
			return
		data["signed_in"] = False
		await redis_client.set(self._key, json.dumps(data))

	async def current_account(self) -> Account:
		data = await self._load()
		if not data or not data.get("signed_in"):
			raise Unauthenticated()
		return Account(id=data["id"], email=data["email"], username=data.get("username", ""))

	async def current_user(self) -> str:
		account = await self.current_account()
		return account.id
