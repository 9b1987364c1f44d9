"""Tests for request context middleware — request IDs."""

import pytest


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/v1/health")
    r2 = await client.get("/api/v1/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    # Each request gets a unique ID
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get(
        "/api/v1/health",
        headers={"X-Request-ID": custom_id},
    )
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_request_id_on_error_responses(client):
    r = await client.get("/api/v1/profile", headers={"X-Request-ID": "trace-401"})
    assert r.status_code == 401
    assert r.headers["X-Request-ID"] == "trace-401"
