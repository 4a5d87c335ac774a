"""Account endpoints backed by the Redis session marker."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from spotit.api.deps import get_session_store
from spotit.domain.spots.schemas import AccountOut, SignInRequest, SignUpRequest
from spotit.infra.session import SessionStore

router = APIRouter()


@router.post("/auth/signup", response_model=AccountOut, status_code=status.HTTP_201_CREATED)
async def sign_up(payload: SignUpRequest, session: SessionStore = Depends(get_session_store)) -> AccountOut:
	account = await session.sign_up(payload.email, payload.password, payload.username)
	return AccountOut(**account.to_dict())


@router.post("/auth/signin", response_model=AccountOut)
async def sign_in(payload: SignInRequest, session: SessionStore = Depends(get_session_store)) -> AccountOut:
	account = await session.sign_in(payload.email, payload.password)
	return AccountOut(**account.to_dict())


@router.post("/auth/signout", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(session: SessionStore = Depends(get_session_store)) -> None:
	await session.sign_out()


@router.get("/auth/me", response_model=AccountOut)
async def me(session: SessionStore = Depends(get_session_store)) -> AccountOut:
	account = await session.current_account()
	return AccountOut(**account.to_dict())
