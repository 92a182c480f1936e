"""questboard - quarterly quests with image-verified task completion."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from questboard.core.config import constants, settings
from questboard.core.db_client import close_connection, init_db
from questboard.core.logging import configure_logfire, instrument_fastapi, instrument_pydantic_ai
from questboard.core.redis_client import redis_client
from questboard.interface.error_handlers import register_error_handlers
from questboard.interface.quests_router import router as quests_router, scoreboard_router
from questboard.interface.tasks_router import router as tasks_router


logger = logging.getLogger(__name__)


async def check_redis_connectivity() -> None:
    """Verify Redis connectivity (optional service).

    Only checks if Redis is configured. Logs a warning if unavailable but doesn't fail.
    """
    if not redis_client.is_available:
        logger.info("startup_validation", extra={"service": "redis", "status": "disabled"})
        return

    if await redis_client.ping():
        logger.info("startup_validation", extra={"service": "redis", "status": "ok"})
    else:
        logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable"})


async def validate_startup_configuration() -> None:
    """Validate required credentials and optional services, failing fast on missing secrets."""
    logger.info("startup_validation_begin")

    try:
        settings.require_credential("openrouter_api_key", "OpenRouter API key")
        logger.info("startup_validation", extra={"stage": "credentials", "status": "ok"})

        await check_redis_connectivity()

        logger.info("startup_validation_complete", extra={"status": "ok"})
    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Configure logging first so validation logs are captured
    configure_logfire()

    await validate_startup_configuration()

    await init_db()
    logger.info("Database initialized")

    instrument_pydantic_ai()
    yield

    await close_connection()
    await redis_client.close()


app = FastAPI(
    title="questboard",
    description="Quarterly quests with image-verified task completion",
    version="0.1.0",
    lifespan=lifespan,
)

instrument_fastapi(app)
register_error_handlers(app)

app.include_router(tasks_router)
app.include_router(quests_router)
app.include_router(scoreboard_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    content = {"status": "healthy", "redis": redis_client.get_health_status()}
    return JSONResponse(content=content, status_code=constants.HTTP_OK)
