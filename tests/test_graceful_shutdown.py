"""
Tests for graceful shutdown functionality.
"""

import asyncio

import pytest

from gamegrid.middleware import GracefulShutdownManager, shutdown_manager


@pytest.mark.asyncio
async def test_shutdown_manager_initialization():
    manager = GracefulShutdownManager()
    assert manager.is_shutting_down is False
    assert manager.active_requests == 0
    assert manager.shutdown_timeout == 30


@pytest.mark.asyncio
async def test_request_tracking():
    manager = GracefulShutdownManager()

    manager.request_started()
    manager.request_started()
    assert manager.active_requests == 2

    manager.request_finished()
    manager.request_finished()
    assert manager.active_requests == 0


@pytest.mark.asyncio
async def test_request_tracking_never_negative():
    manager = GracefulShutdownManager()

    manager.request_finished()
    assert manager.active_requests == 0


@pytest.mark.asyncio
async def test_shutdown_with_no_active_requests():
    manager = GracefulShutdownManager()
    loop = asyncio.get_running_loop()

    start = loop.time()
    await manager.initiate_shutdown()

    assert manager.is_shutting_down is True
    assert loop.time() - start < 1.0


@pytest.mark.asyncio
async def test_shutdown_waits_for_active_requests():
    manager = GracefulShutdownManager()
    manager.request_started()
    manager.request_started()

    shutdown_task = asyncio.create_task(manager.initiate_shutdown())
    await asyncio.sleep(0.1)
    assert not shutdown_task.done()
    assert manager.is_shutting_down is True

    manager.request_finished()
    await asyncio.sleep(0.1)
    assert not shutdown_task.done()

    manager.request_finished()
    await asyncio.wait_for(shutdown_task, timeout=1.0)


@pytest.mark.asyncio
async def test_shutdown_timeout():
    manager = GracefulShutdownManager(timeout=0.5)
    manager.request_started()  # never finishes
    loop = asyncio.get_running_loop()

    start = loop.time()
    await manager.initiate_shutdown()
    duration = loop.time() - start

    assert 0.4 < duration < 0.9
    assert manager.active_requests == 1


@pytest.mark.asyncio
async def test_shutdown_prevents_new_requests():
    manager = GracefulShutdownManager()
    manager.is_shutting_down = True

    manager.request_started()
    assert manager.active_requests == 0


@pytest.mark.asyncio
async def test_multiple_shutdown_calls():
    manager = GracefulShutdownManager()

    await manager.initiate_shutdown()
    await manager.initiate_shutdown()
    assert manager.is_shutting_down is True


@pytest.mark.asyncio
async def test_shutdown_integration(client, monkeypatch):
    """Requests arriving during shutdown are refused with 503."""
    response = await client.get("/health")
    assert response.status_code == 200

    monkeypatch.setattr(shutdown_manager, "is_shutting_down", True)

    response = await client.get("/health")
    assert response.status_code == 503
    assert response.json() == {"success": False, "message": "Service is shutting down, please retry"}
    assert response.headers["Retry-After"] == "10"
