"""
Tests for the Database wrapper, its dependency and startup resilience.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from pymongo.errors import AutoReconnect, OperationFailure, ServerSelectionTimeoutError

from gamegrid.config import settings
from gamegrid.db import Database, get_database, retry_on_db_error
from gamegrid.main import lifespan


@pytest.mark.asyncio
async def test_ensure_indexes_is_repeatable(database):
    await database.ensure_indexes()

    indexes = await database.users.index_information()
    assert indexes["email_unique"]["unique"] is True


@pytest.mark.asyncio
async def test_collections_are_named(database: Database):
    assert database.users.name == "users"
    assert database.games.name == "games"
    assert database.posts.name == "posts"


def test_get_database_reads_app_state():
    db = object()
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(database=db)))

    assert get_database(request) is db


@pytest.mark.asyncio
class TestRetryOnDbError:

    async def test_succeeds_after_transient_failures(self):
        func = AsyncMock(side_effect=[AutoReconnect("reset"), AutoReconnect("reset"), "ok"])

        assert await retry_on_db_error(func, max_retries=3, base_delay=0) == "ok"
        assert func.await_count == 3

    async def test_raises_after_max_retries(self):
        func = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))

        with pytest.raises(ServerSelectionTimeoutError):
            await retry_on_db_error(func, max_retries=3, base_delay=0)
        assert func.await_count == 3

    async def test_other_errors_not_retried(self):
        func = AsyncMock(side_effect=OperationFailure("not authorized"))

        with pytest.raises(OperationFailure):
            await retry_on_db_error(func, max_retries=3, base_delay=0)
        assert func.await_count == 1


@pytest.mark.asyncio
async def test_startup_fails_without_indexes(monkeypatch):
    """The app refuses to start when the unique email index cannot be created."""
    monkeypatch.setattr(settings, "DB_INIT_RETRIES", 2)
    monkeypatch.setattr(settings, "DB_INIT_RETRY_DELAY", 0)
    database = MagicMock()
    database.ensure_indexes = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))

    with patch("gamegrid.main.Database.from_settings", return_value=database):
        with pytest.raises(ServerSelectionTimeoutError):
            async with lifespan(FastAPI()):
                pass

    assert database.ensure_indexes.await_count == 2
    database.close.assert_called_once()
