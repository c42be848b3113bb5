"""FastAPI application entry point with lifecycle management."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import settings
from .db import Database, retry_on_db_error
from .errors import register_exception_handlers
from .logger import logger
from .middleware import (
    add_request_id_middleware,
    graceful_shutdown_middleware,
    request_logging_middleware,
    security_headers_middleware,
    shutdown_manager,
)
from .monitoring import setup_monitoring
from .routes import limiter, router


# ==================== Application Lifecycle ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the MongoDB client: opened at startup, closed after in-flight requests drain."""
    logger.info(f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode")
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is not set - login and token verification will fail")

    database = Database.from_settings()
    app.state.database = database
    try:
        # The unique email index backs registration; refuse to start without it
        await retry_on_db_error(
            database.ensure_indexes,
            max_retries=settings.DB_INIT_RETRIES,
            base_delay=settings.DB_INIT_RETRY_DELAY,
        )
    except PyMongoError as e:
        logger.critical(f"Could not ensure MongoDB indexes at startup, aborting: {e}")
        database.close()
        raise

    logger.info(f"{settings.APP_NAME} started successfully - ready to accept requests")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await shutdown_manager.initiate_shutdown()
    database.close()
    logger.info(f"{settings.APP_NAME} shutdown complete")


# ==================== Application Setup ====================

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Middleware registration (last registered = outermost layer)
app.middleware("http")(security_headers_middleware)
app.middleware("http")(request_logging_middleware)
app.middleware("http")(add_request_id_middleware)
app.middleware("http")(graceful_shutdown_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

register_exception_handlers(app)

app.include_router(router)

# Prometheus metrics at /metrics
setup_monitoring(app)
