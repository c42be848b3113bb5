"""
Tests for security headers middleware.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_security_headers_present(client: AsyncClient):
    """Test that all required security headers are present in responses."""
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.headers.get("X-Content-Type-Options") == "nosniff"
    assert response.headers.get("X-Frame-Options") == "DENY"
    assert response.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"
    assert "Content-Security-Policy" in response.headers


@pytest.mark.asyncio
async def test_security_headers_on_all_endpoints(client: AsyncClient):
    for endpoint in ["/", "/health", "/metrics", "/favicon.ico"]:
        response = await client.get(endpoint)

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


@pytest.mark.asyncio
async def test_hsts_header_not_in_dev(client: AsyncClient):
    """HSTS is only sent in production."""
    response = await client.get("/health")
    assert response.headers.get("Strict-Transport-Security") is None


@pytest.mark.asyncio
async def test_csp_header_content(client: AsyncClient):
    response = await client.get("/health")

    csp = response.headers.get("Content-Security-Policy")
    assert csp is not None
    assert "default-src 'self'" in csp
    assert "script-src" in csp


@pytest.mark.asyncio
async def test_security_headers_on_error_responses(client: AsyncClient):
    response = await client.get("/nonexistent")

    assert response.status_code == 404
    assert response.headers.get("X-Content-Type-Options") == "nosniff"
    assert response.headers.get("X-Frame-Options") == "DENY"


@pytest.mark.asyncio
async def test_security_headers_on_rejected_writes(client: AsyncClient):
    """Headers are set even when the request is refused."""
    response = await client.post("/games", json={"title": "No token"})

    assert response.status_code == 401
    assert response.headers["X-Frame-Options"] == "DENY"


@pytest.mark.asyncio
async def test_request_id_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"

    generated = await client.get("/health")
    assert generated.headers["X-Request-ID"]
