"""Unit tests for API key generation, storage and authentication."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conduit.auth.api_key import (
    ApiKeyAuthenticator,
    PostgresApiKeyStore,
    generate_api_key,
    hash_api_key,
)
from conduit.kernel.errors import UnauthorizedError

pytestmark = pytest.mark.unit


class TestGenerateApiKey:
    def test_key_format(self):
        full_key, key_prefix, key_hash = generate_api_key()

        assert full_key.startswith(key_prefix + "_")
        assert key_prefix.startswith("ak_")
        assert len(key_prefix) == 9
        assert key_prefix[3:].isalnum()
        assert key_hash == hash_api_key(full_key)

    def test_keys_are_unique(self):
        assert generate_api_key()[0] != generate_api_key()[0]

    def test_hash_is_sha256_hex(self):
        assert len(hash_api_key("ak_abc123_secret")) == 64


@pytest.mark.asyncio
class TestApiKeyAuthenticator:
    async def test_valid_key_resolves_record(self, api_key_store, api_key_factory, fake_clock):
        raw_key, _, _ = generate_api_key()
        api_key_store.add(raw_key, api_key_factory())

        record = await ApiKeyAuthenticator(api_key_store, clock=fake_clock.now).authenticate(raw_key)

        assert record.id == "key_test"

    async def test_missing_key(self, api_key_store):
        with pytest.raises(UnauthorizedError) as exc_info:
            await ApiKeyAuthenticator(api_key_store).authenticate(None)
        assert exc_info.value.code == "auth.missing_api_key"

    @pytest.mark.parametrize(
        "raw_key, overrides",
        [
            ("not-a-conduit-key", None),
            ("ak_unknown_secret", None),
            ("ak_abc123_inactive", {"is_active": False}),
            ("ak_abc123_expired", {"expires_at": "past"}),
        ],
    )
    async def test_every_rejection_looks_the_same(
        self, api_key_store, api_key_factory, fake_clock, raw_key, overrides
    ):
        if overrides is not None:
            if overrides.get("expires_at") == "past":
                overrides = {"expires_at": fake_clock.now() - timedelta(seconds=1)}
            api_key_store.add(raw_key, api_key_factory(**overrides))

        with pytest.raises(UnauthorizedError) as exc_info:
            await ApiKeyAuthenticator(api_key_store, clock=fake_clock.now).authenticate(raw_key)

        assert exc_info.value.message == "Invalid API key"
        assert exc_info.value.code == "auth.invalid_api_key"

    async def test_key_expiring_later_is_accepted(self, api_key_store, api_key_factory, fake_clock):
        api_key_store.add(
            "ak_abc123_future",
            api_key_factory(expires_at=fake_clock.now() + timedelta(days=1)),
        )

        record = await ApiKeyAuthenticator(api_key_store, clock=fake_clock.now).authenticate(
            "ak_abc123_future"
        )

        assert record.is_active


@pytest.mark.asyncio
class TestPostgresApiKeyStore:
    async def test_find_by_hash_maps_row(self, mock_conn):
        mock_conn.fetchrow.return_value = {
            "id": "key_1",
            "name": "CRM export",
            "key_prefix": "ak_abc123",
            "entity_name": "Contacts",
            "table_name": "contacts",
            "allowed_operations": ["list", "get"],
            "rate_limit_per_minute": 30,
            "rate_limit_per_day": None,
            "expires_at": None,
            "is_active": True,
            "owner_id": "owner_1",
        }

        record = await PostgresApiKeyStore().find_by_hash("hash")

        assert record.allowed_operations == ["list", "get"]
        assert record.rate_limit_per_minute == 30
        assert record.rate_limit_per_day == 10000
        assert mock_conn.fetchrow.call_args.args[1] == "hash"

    async def test_find_by_hash_missing(self, mock_conn):
        assert await PostgresApiKeyStore().find_by_hash("hash") is None

    async def test_record_usage_increments_counter(self, mock_conn):
        await PostgresApiKeyStore().record_usage("key_1")

        sql, key_id = mock_conn.execute.call_args.args
        assert "request_count = request_count + 1" in sql
        assert "last_used_at = NOW()" in sql
        assert key_id == "key_1"
