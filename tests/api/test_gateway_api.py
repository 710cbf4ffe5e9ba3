"""API tests for the public gateway routes."""

from __future__ import annotations

from datetime import timedelta

import pytest

pytestmark = [pytest.mark.api, pytest.mark.asyncio]

RAW_KEY = "ak_abc123_s3cr3t"


@pytest.fixture
def registered_key(api_key_store, api_key_factory):
    def register(**overrides):
        api_key_store.add(RAW_KEY, api_key_factory(**overrides))

    return register


async def test_list_is_proxied_with_rate_limit_headers(async_client, registered_key, gateway):
    registered_key()

    response = await async_client.get(
        "/gateway/contacts/list",
        params={"city": "Oslo"},
        headers={"X-API-Key": RAW_KEY},
    )
    await gateway.drain()

    assert response.status_code == 200
    assert response.json() == {"received": {"operation": "list", "filters": {"city": "Oslo"}}}
    assert response.headers["X-RateLimit-Remaining"] == "59"
    assert response.headers["X-RateLimit-Limit"] == "60"


async def test_create_forwards_json_body(async_client, registered_key, upstream_requests):
    registered_key()

    response = await async_client.post(
        "/gateway/contacts/create",
        json={"data": {"name": "Ada"}},
        headers={"X-API-Key": RAW_KEY},
    )

    assert response.status_code == 200
    assert response.json()["received"] == {"operation": "create", "data": {"name": "Ada"}}


async def test_post_with_invalid_json_body_is_proxied_without_body(async_client, registered_key):
    registered_key()

    response = await async_client.post(
        "/gateway/contacts/create",
        content=b"not json",
        headers={"X-API-Key": RAW_KEY, "Content-Type": "application/json"},
    )

    assert response.json()["received"] == {"operation": "create"}


async def test_missing_key_is_401(async_client):
    response = await async_client.get("/gateway/contacts/list")

    assert response.status_code == 401
    assert response.json()["detail"] == "Missing X-API-Key header"


async def test_expired_key_is_401(async_client, registered_key, fake_clock, fake_redis):
    registered_key(expires_at=fake_clock.now() - timedelta(minutes=1))

    response = await async_client.get("/gateway/contacts/list", headers={"X-API-Key": RAW_KEY})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid API key"
    assert fake_redis.counters == {}


async def test_invalid_operation_is_400(async_client, registered_key):
    registered_key()

    response = await async_client.get("/gateway/contacts/purge", headers={"X-API-Key": RAW_KEY})

    assert response.status_code == 400
    assert response.json()["code"] == "gateway.invalid_operation"


async def test_forbidden_operation_is_403(async_client, registered_key):
    registered_key(allowed_operations=["list"])

    response = await async_client.post(
        "/gateway/contacts/delete",
        json={"id": "c_1"},
        headers={"X-API-Key": RAW_KEY},
    )

    assert response.status_code == 403


async def test_rate_limited_response_has_retry_after(async_client, registered_key):
    registered_key(rate_limit_per_minute=1)

    first = await async_client.get("/gateway/contacts/list", headers={"X-API-Key": RAW_KEY})
    second = await async_client.get("/gateway/contacts/list", headers={"X-API-Key": RAW_KEY})

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.headers["Retry-After"] == "60"
    assert second.headers["X-RateLimit-Remaining"] == "0"
    assert second.json()["code"] == "rate_limit.exceeded"
