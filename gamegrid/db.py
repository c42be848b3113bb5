"""MongoDB client ownership, collection access and health checks."""

import asyncio

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import ConnectionFailure

from .config import settings
from .logger import logger

USERS = "users"
GAMES = "games"
POSTS = "posts"


# ==================== Database Resilience ====================

async def retry_on_db_error(func, max_retries: int = 3, base_delay: float = 0.5):
    """Retry a database operation with exponential backoff.

    Only connection-level failures (no server reachable, network timeouts)
    are retried; anything else is raised at once.

    Args:
        func: Async function to retry
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles each retry)

    Returns:
        Result of the function call

    Raises:
        The last ConnectionFailure if every attempt fails
    """
    max_retries = max(max_retries, 1)
    for attempt in range(max_retries):
        try:
            return await func()
        except ConnectionFailure as e:
            if attempt == max_retries - 1:
                logger.error(
                    f"Database operation failed (attempt {attempt + 1}/{max_retries}): {e}",
                    exc_info=True
                )
                raise

            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Database error on attempt {attempt + 1}/{max_retries}, retrying in {delay}s: {e}"
            )
            await asyncio.sleep(delay)


class Database:
    """Owns one Motor client for the lifetime of the process.

    Created in the application lifespan and handed to request handlers through
    the ``get_database`` dependency. Tests build one around a mock client.
    """

    def __init__(self, client: AsyncIOMotorClient, db_name: str = settings.DB_NAME):
        self.client = client
        self.db: AsyncIOMotorDatabase = client[db_name]

    @classmethod
    def from_settings(cls) -> "Database":
        client = AsyncIOMotorClient(
            settings.DB_URL,
            tz_aware=True,
            connectTimeoutMS=settings.DB_CONNECT_TIMEOUT_MS,
            serverSelectionTimeoutMS=settings.DB_SERVER_SELECTION_TIMEOUT_MS,
        )
        logger.info(f"MongoDB client configured: database={settings.DB_NAME}")
        return cls(client, settings.DB_NAME)

    @property
    def users(self) -> AsyncIOMotorCollection:
        return self.db[USERS]

    @property
    def games(self) -> AsyncIOMotorCollection:
        return self.db[GAMES]

    @property
    def posts(self) -> AsyncIOMotorCollection:
        return self.db[POSTS]

    async def ensure_indexes(self) -> None:
        """Create the indexes the service relies on. Safe to call repeatedly."""
        await self.users.create_index([("email", ASCENDING)], unique=True, name="email_unique")
        await self.games.create_index([("status", ASCENDING)], name="status")
        await self.posts.create_index([("authorId", ASCENDING)], name="author")
        logger.info("MongoDB indexes ensured")

    async def ping(self) -> bool:
        """Return True when the server answers a ping."""
        try:
            await self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self) -> None:
        """Close the client and its connection pool."""
        logger.info("Closing MongoDB client")
        self.client.close()


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the process-wide Database."""
    return request.app.state.database
