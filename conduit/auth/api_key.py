"""
API key generation and validation for the gateway.

Keys look like `ak_<6 alnum>_<secret>`. Only the SHA-256 hash and the visible
prefix are stored.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import Callable, NamedTuple, Protocol

import structlog

from conduit.db.port import RawQueryPool, get_raw_query_pool
from conduit.kernel.errors import UnauthorizedError
from conduit.kernel.hashing import sha256_text
from conduit.kernel.time import coerce_utc, utc_now

logger = structlog.get_logger()

KEY_PREFIX = "ak_"
KEY_PREFIX_LENGTH = 6  # Visible portion after `ak_`
KEY_SECRET_BYTES = 24

_PREFIX_ALPHABET = string.ascii_letters + string.digits


class ApiKeyRecord(NamedTuple):
    """A stored API key, as the gateway sees it."""

    id: str
    name: str
    key_prefix: str
    entity_name: str
    table_name: str
    allowed_operations: list[str]
    rate_limit_per_minute: int
    rate_limit_per_day: int
    expires_at: datetime | None
    is_active: bool
    owner_id: str | None = None


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new API key.

    Returns:
        Tuple of (full_key, key_prefix, key_hash)
        - full_key: The complete key to give to the caller (only shown once)
        - key_prefix: `ak_` plus 6 alphanumeric chars, for identification
        - key_hash: SHA-256 hash for storage
    """
    prefix_part = "".join(secrets.choice(_PREFIX_ALPHABET) for _ in range(KEY_PREFIX_LENGTH))
    key_prefix = f"{KEY_PREFIX}{prefix_part}"
    full_key = f"{key_prefix}_{secrets.token_urlsafe(KEY_SECRET_BYTES)}"
    return full_key, key_prefix, hash_api_key(full_key)


def hash_api_key(api_key: str) -> str:
    """Hash an API key using SHA-256."""
    return sha256_text(api_key)


def _display_prefix(api_key: str) -> str:
    return api_key[: len(KEY_PREFIX) + KEY_PREFIX_LENGTH]


class ApiKeyStore(Protocol):
    async def find_by_hash(self, key_hash: str) -> ApiKeyRecord | None: ...

    async def record_usage(self, key_id: str) -> None: ...


class PostgresApiKeyStore:
    """Read access to `api_keys` plus the usage statistics update."""

    def __init__(self, pool: RawQueryPool | None = None) -> None:
        self._pool = pool

    async def _get_pool(self) -> RawQueryPool:
        if self._pool is None:
            self._pool = await get_raw_query_pool()
        return self._pool

    async def find_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    id,
                    name,
                    key_prefix,
                    entity_name,
                    table_name,
                    allowed_operations,
                    rate_limit_per_minute,
                    rate_limit_per_day,
                    expires_at,
                    is_active,
                    owner_id
                FROM api_keys
                WHERE key_hash = $1
                """,
                key_hash,
            )

        if not row:
            return None

        return ApiKeyRecord(
            id=str(row["id"]),
            name=row["name"],
            key_prefix=row["key_prefix"],
            entity_name=row["entity_name"],
            table_name=row["table_name"],
            allowed_operations=list(row["allowed_operations"] or []),
            rate_limit_per_minute=int(row["rate_limit_per_minute"] or 60),
            rate_limit_per_day=int(row["rate_limit_per_day"] or 10000),
            expires_at=row["expires_at"],
            is_active=bool(row["is_active"]),
            owner_id=row["owner_id"],
        )

    async def record_usage(self, key_id: str) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE api_keys
                SET request_count = request_count + 1,
                    last_used_at = NOW()
                WHERE id = $1
                """,
                key_id,
            )


class ApiKeyAuthenticator:
    """
    Resolve a raw `X-API-Key` value to an active, unexpired key.

    Every rejection raises the same `UnauthorizedError("Invalid API key")` so a
    caller cannot tell unknown keys from revoked or expired ones. The reason is
    only written to the log.
    """

    def __init__(
        self,
        store: ApiKeyStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def authenticate(self, raw_key: str | None) -> ApiKeyRecord:
        if not raw_key:
            logger.warning("API key rejected", reason="missing")
            raise UnauthorizedError(message="Missing API key", code="auth.missing_api_key")

        if not raw_key.startswith(KEY_PREFIX):
            self._reject("invalid_format", raw_key)

        record = await self._store.find_by_hash(hash_api_key(raw_key))
        if record is None:
            self._reject("not_found", raw_key)
        if not record.is_active:
            self._reject("inactive", raw_key, key_id=record.id)
        if record.expires_at is not None and coerce_utc(record.expires_at) <= self._clock():
            self._reject("expired", raw_key, key_id=record.id)

        return record

    def _reject(self, reason: str, raw_key: str, *, key_id: str | None = None) -> None:
        logger.warning(
            "API key rejected",
            reason=reason,
            key_prefix=_display_prefix(raw_key),
            key_id=key_id,
        )
        raise UnauthorizedError(message="Invalid API key", code="auth.invalid_api_key")
