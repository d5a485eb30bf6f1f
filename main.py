from datetime import timedelta
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pytz import utc

import config
import stores
from infrastructure.redis import init_default_redis, close_default_redis
from routes import matches_router, ws_router
from routes import matches_helpers
from routes.matches import get_match_context
from routes.ws import expire_stale_connections

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# --- FastAPI setup ---
app = FastAPI(title="Robot Orchestra")

# --- Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["POST", "GET"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={
        "detail": "Invalid request",
        "errors": [{"loc": [str(part) for part in e["loc"]], "msg": e["msg"]} for e in exc.errors()],
    })


@app.get("/health")
async def health():
    return {"status": "ok"}


# --- Register routes ---
app.include_router(matches_router, prefix="/matches")
app.include_router(ws_router, prefix="/matches")


# --- Scheduled jobs ---
async def sweep_response_timeouts() -> None:
    closed = await matches_helpers.enforce_response_time_limits(stores.get_match_store(), ctx=get_match_context())
    if closed:
        logger.info(f"[SCHEDULER] Closed {closed} timed-out rounds")


async def expire_sessions() -> None:
    await expire_stale_connections(stores.get_session_store(), timedelta(hours=config.SESSION_MAX_AGE_HOURS))


scheduler = AsyncIOScheduler(timezone=utc)
scheduler.add_job(sweep_response_timeouts, trigger="interval", seconds=config.TIMEOUT_SWEEP_SECONDS, max_instances=1, coalesce=True)
scheduler.add_job(expire_sessions, trigger="cron", minute=0)  # hourly


@app.on_event("startup")
async def startup_event():
    await stores.open_stores(config.DB_PATH)
    if config.REDIS_URL:
        await init_default_redis(config.REDIS_URL)
    scheduler.start()
    logger.info("[STARTUP] Stores open, scheduler running")


@app.on_event("shutdown")
async def shutdown_event():
    scheduler.shutdown()
    await close_default_redis()
    await stores.close_stores()
