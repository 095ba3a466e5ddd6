from __future__ import annotations

import logging
import time
import tracemalloc
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from dropiq.api.admin import router as admin_router
from dropiq.api.airdrops import router as airdrops_router
from dropiq.api.auth import router as auth_router
from dropiq.api.behavior import router as behavior_router
from dropiq.api.campaigns import router as campaigns_router
from dropiq.api.preferences import router as preferences_router
from dropiq.api.strategies import router as strategies_router
from dropiq.api.users import public_router as users_public_router, router as users_router
from dropiq.auth.security import reset_in_memory_auth_state
from dropiq.core.config import (
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGINS,
    get_dev_create_all,
    get_enable_db,
    get_rate_limit_per_minute,
)
from dropiq.core import database
from dropiq.core.database import check_database, init_db, is_db_enabled, shutdown_db, start_db
from dropiq.core.metrics import metrics
from dropiq.core.seed import seed_achievements
from dropiq.core.time_utils import isoformat_utc, utc_now

logger = logging.getLogger(__name__)

# Ensure memory tracing for health endpoint
try:
    tracemalloc.start()
except Exception:
    pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context: binds the DB engine to this loop and ensures the schema."""
    await start_db()
    if get_dev_create_all() and is_db_enabled():
        await init_db()
        async with database.SessionLocal() as session:
            await seed_achievements(session)
    # Fresh auth state per app startup keeps TestClient contexts isolated
    reset_in_memory_auth_state()
    logger.info(
        "startup_config",
        extra={
            "ENABLE_DB": bool(get_enable_db()),
            "DEV_CREATE_ALL": bool(get_dev_create_all()),
            "db_enabled": is_db_enabled(),
            "rate_limit_per_minute": get_rate_limit_per_minute(),
        },
    )
    try:
        yield
    finally:
        # Dispose database engines within the running loop to avoid cross-loop termination
        await shutdown_db()


app = FastAPI(title="DROPIQ Airdrop Discovery API", version="1.0.0", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)

# Routers
app.include_router(auth_router)
app.include_router(airdrops_router)
app.include_router(campaigns_router)
app.include_router(admin_router)
app.include_router(preferences_router)
app.include_router(behavior_router)
app.include_router(strategies_router)
app.include_router(users_router)
app.include_router(users_public_router)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    except Exception:
        logger.exception("unhandled_request_error", extra={"method": request.method, "path": request.url.path})
        raise
    finally:
        try:
            duration = time.perf_counter() - start
            route_obj = request.scope.get("route")
            route_path = getattr(route_obj, "path", request.url.path)
            status = getattr(response, "status_code", 500)
            metrics.record_http(request.method, route_path, status, duration)
        except Exception:
            # Never break requests due to metrics errors
            logger.debug("metrics_record_failed", exc_info=True)


@app.get("/metrics")
async def get_metrics():
    return metrics.snapshot()


@app.get("/")
async def root():
    """Simple banner indicating server readiness."""
    return {"message": "DROPIQ Airdrop Discovery API", "status": "running"}


@app.get("/healthz")
async def healthz():
    """Liveness probe with process memory and database status."""
    try:
        current, peak = tracemalloc.get_traced_memory()
    except Exception:
        current, peak = 0, 0
    db_ok = await check_database()
    return {
        "status": "ok",
        "uptime_s": round(metrics.uptime_s(), 3),
        "memory": {"current_bytes": current, "peak_bytes": peak},
        "database": {"status": "ok" if db_ok else "fail"},
        "server_time": isoformat_utc(utc_now()),
    }


@app.get("/healthz/db")
async def healthz_db():
    """Database health probe endpoint.

    Returns:
        JSON with database.enabled and database.status (ok|fail).
    """
    enabled = is_db_enabled()
    ok = await check_database() if enabled else False
    return {
        "database": {
            "enabled": bool(enabled),
            "status": "ok" if ok else "fail",
        }
    }
