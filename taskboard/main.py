import os
import logging
import logging.config
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from arq import create_pool
from arq.connections import RedisSettings

from taskboard.core import config
from taskboard.core.errors import ConflictRetry, NotFound, OrderingInvariantError, ValidationFailed
from taskboard.db.base import Base
from taskboard.db import models  # noqa: F401  (registers tables on Base.metadata)
from taskboard.db.session import engine, async_session
from taskboard.api.routes import boards, tasks, notifications, system

# Load logging config if present
if os.path.exists("logging.conf"):
    logging.config.fileConfig("logging.conf", disable_existing_loggers=False)
logger = logging.getLogger("root")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")

    # Start without a queue when Redis is down; dispatch logs and drops
    try:
        app.state.redis = await create_pool(RedisSettings.from_dsn(config.REDIS_URL))
    except Exception as e:
        app.state.redis = None
        logger.warning(f"Redis unavailable, notifications disabled: {e}")

    yield  # App runs here

    # Shutdown logic
    if app.state.redis is not None:
        await app.state.redis.close()
    await engine.dispose()
    logger.info("Shutting down...")


# Create FastAPI app with lifespan
app = FastAPI(
    title="Task Board API",
    version="1.0",
    lifespan=lifespan,
)

# Dev-only CORS settings
if config.APP_ENV == "development":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("CORS allowed for development environment")
elif config.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    logger.info("Running in production environment - CORS restricted")


# Domain errors -> HTTP
@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": f"{exc.entity_type} not found"})


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return JSONResponse(
        status_code=422,
        content={"detail": [{"loc": [exc.field], "msg": exc.reason, "type": "value_error"}]},
    )


@app.exception_handler(ConflictRetry)
async def conflict_handler(request: Request, exc: ConflictRetry):
    logger.warning(f"Gave up after repeated conflicts: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Busy, please retry"})


@app.exception_handler(OrderingInvariantError)
async def ordering_error_handler(request: Request, exc: OrderingInvariantError):
    logger.error(f"Ordering invariant broken: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal ordering error"})


# API routes
app.include_router(boards.router)
app.include_router(tasks.router)
app.include_router(notifications.router)
app.include_router(system.router)


@app.api_route("/api/health", methods=["GET", "HEAD"])
async def health(request: Request):
    status = {
        "api": "ok",
        "database": None,
        "redis": None,
        "worker": None,
    }

    http_status = 200

    # --- Database check ---
    try:
        async with async_session() as db:
            await db.execute(text("SELECT 1"))
        status["database"] = "connected"
    except Exception as e:
        status["database"] = f"error: {e}"
        http_status = 503

    # --- Redis + worker heartbeat ---
    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        status["redis"] = "unavailable"
        status["worker"] = "unknown"
        return JSONResponse(content=status, status_code=http_status)

    try:
        await redis.ping()
        status["redis"] = "connected"
        heartbeat = await redis.get("arq:heartbeat")
        if heartbeat:
            last_heartbeat = datetime.fromtimestamp(float(heartbeat))
            status["worker"] = f"running (last heartbeat {last_heartbeat.isoformat()})"
        else:
            status["worker"] = "not reporting"
    except Exception as e:
        status["redis"] = f"error: {e}"

    return JSONResponse(content=status, status_code=http_status)
