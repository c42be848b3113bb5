"""HTTP middleware for request tracking, logging and security headers."""

import asyncio
import time
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse

from .config import settings
from .logger import logger


# ==================== Graceful Shutdown ====================

class GracefulShutdownManager:
    """Counts in-flight requests so shutdown can wait for them.

    Once shutdown starts, new requests are refused with 503 and the database
    client is only closed after the in-flight ones finish or the timeout hits.
    """

    def __init__(self, timeout: float = settings.GRACEFUL_SHUTDOWN_TIMEOUT):
        self.is_shutting_down = False
        self.active_requests = 0
        self.shutdown_timeout = timeout

    def request_started(self):
        if not self.is_shutting_down:
            self.active_requests += 1

    def request_finished(self):
        if self.active_requests > 0:
            self.active_requests -= 1

    async def initiate_shutdown(self):
        """Stop accepting requests and wait for active ones, bounded by the timeout."""
        if self.is_shutting_down:
            return

        logger.info("Graceful shutdown initiated")
        self.is_shutting_down = True

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        while self.active_requests > 0:
            if loop.time() - start_time >= self.shutdown_timeout:
                logger.warning(
                    f"Shutdown timeout ({self.shutdown_timeout}s) reached with "
                    f"{self.active_requests} request(s) still active - forcing shutdown"
                )
                return
            await asyncio.sleep(0.1)
        logger.info("No active requests - proceeding with shutdown")


shutdown_manager = GracefulShutdownManager()


async def graceful_shutdown_middleware(request: Request, call_next):
    """Track active requests and reject new requests during shutdown."""
    if shutdown_manager.is_shutting_down:
        logger.warning(
            f"Rejecting request {request.method} {request.url.path} - service is shutting down"
        )
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Service is shutting down, please retry"},
            headers={"Retry-After": "10"},
        )

    shutdown_manager.request_started()
    try:
        return await call_next(request)
    finally:
        shutdown_manager.request_finished()


# ==================== Request ID Middleware ====================

async def add_request_id_middleware(request: Request, call_next):
    """Add unique request ID to each request for tracing across logs."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ==================== Request Logging Middleware ====================

async def request_logging_middleware(request: Request, call_next):
    """Log method, path, status and duration. Bodies and headers are not logged."""
    start_time = time.perf_counter()
    request_id = getattr(request.state, "request_id", "unknown")

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"[{request_id}] {request.method} {request.url.path} - "
            f"Error: {e} - Duration: {time.perf_counter() - start_time:.3f}s",
            exc_info=True
        )
        raise

    logger.info(
        f"[{request_id}] {request.method} {request.url.path} - "
        f"Status: {response.status_code} - Duration: {time.perf_counter() - start_time:.3f}s"
    )
    return response


# ==================== Security Headers Middleware ====================

async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    # JSON API only; Swagger UI assets come from the jsdelivr CDN
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://fastapi.tiangolo.com"
    )

    if settings.APP_ENV == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    return response
