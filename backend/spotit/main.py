"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from spotit.api import auth, deps, ops, spots
from spotit.api.errors import install_error_handlers
from spotit.infra import postgres
from spotit.obs import init as obs_init
from spotit.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	if settings.storage_backend == "postgres":
		await postgres.init_pool()
	try:
		yield
	finally:
		await deps.shutdown()
		await postgres.close_pool()


app = FastAPI(
	title="Spot Engine",
	lifespan=lifespan,
	docs_url=None if settings.is_prod() else "/docs",
	redoc_url=None,
)
install_error_handlers(app)
obs_init(app)

app.include_router(auth.router, tags=["auth"])
app.include_router(spots.router, tags=["spots"])
app.include_router(ops.router, tags=["ops"])
