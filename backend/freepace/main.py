import asyncio
import logging

from fastapi import FastAPI

from .ai_monitor import AICallMonitor
from .db import Base, engine
from . import models  # noqa: F401  registers tables on Base
from .realtime import LivenessWatchdog, Relay
from .settings import settings
from .routers import health, ai, progress, relay

logger = logging.getLogger("freepace")

app = FastAPI(title="Free-paced Learning API")
app.include_router(health.router)
app.include_router(ai.router)
app.include_router(progress.router)
app.include_router(relay.router)

app.state.relay = Relay()
app.state.ai_monitor = AICallMonitor(max_calls=settings.ai_monitor_max_calls)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"relay_clients": app.state.relay.registry.size(),
	}


@app.on_event("startup")
async def startup_event():
	logging.basicConfig(
		level=getattr(logging, settings.log_level.upper(), logging.INFO),
		format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
	)
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Stale-connection sweep only runs when configured
	if settings.liveness_enabled:
		watchdog = LivenessWatchdog(app.state.relay.registry, settings.relay_liveness_timeout_seconds)
		app.state.watchdog_task = asyncio.create_task(watchdog.run(settings.relay_liveness_interval_seconds))
		logger.info(
			"Relay liveness watchdog every %ss (timeout %ss)",
			settings.relay_liveness_interval_seconds,
			settings.relay_liveness_timeout_seconds,
		)


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "watchdog_task", None)
	if task is not None:
		task.cancel()
