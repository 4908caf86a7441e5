# app/main.py
import asyncio
import contextlib
import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.core.db import init_db, close_db
from app.core.bootstrap import ensure_persona_pool
from app.core.reward_status import RewardStatusRegistry
from app.services.game_service import RoundLocks
from app.services.reward_service import RewardFlights

from app.api.v1.routers import game, reward, personas, progress

logger = logging.getLogger("uvicorn.error")

STATUS_SWEEP_INTERVAL_SECONDS = 60

app = FastAPI(title=settings.APP_NAME)

# CORS (with Cookie)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Process-scoped state, handed to routers through app.api.v1.deps
app.state.reward_status = RewardStatusRegistry(ttl_seconds=settings.reward_status_ttl_seconds)
app.state.round_locks = RoundLocks()
app.state.reward_flights = RewardFlights()

async def _sweep_reward_status(registry: RewardStatusRegistry) -> None:
    while True:
        await asyncio.sleep(STATUS_SWEEP_INTERVAL_SECONDS)
        removed = registry.sweep()
        if removed:
            logger.info("[RewardStatus] swept %d expired entries", removed)

@app.on_event("startup")
async def on_startup():
    await init_db()
    # Make sure rounds can start on a fresh database
    await ensure_persona_pool()
    app.state.status_sweeper = asyncio.create_task(_sweep_reward_status(app.state.reward_status))
    logger.info("[startup] %s ready (env=%s)", settings.APP_NAME, settings.env)

@app.on_event("shutdown")
async def on_shutdown():
    sweeper = getattr(app.state, "status_sweeper", None)
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    app.state.reward_status.clear()
    await close_db()

# Generated media (reward audio/photos, portraits)
media_dir = Path(settings.media_root)
media_dir.mkdir(parents=True, exist_ok=True)
app.mount(settings.media_base_url, StaticFiles(directory=str(media_dir)), name="media")

# REST
app.include_router(game.router, prefix="/api/v1")
app.include_router(reward.router, prefix="/api/v1")
app.include_router(personas.router, prefix="/api/v1")
app.include_router(progress.router, prefix="/api/v1")

@app.get("/healthz")
def healthz():
    return {"ok": True}
