"""
Authentication module for Conduit.

API keys and fixed-window rate limiting for the gateway, plus the internal
service token check for the dispatch API.
"""

from conduit.auth.api_key import (
    ApiKeyAuthenticator,
    ApiKeyRecord,
    ApiKeyStore,
    PostgresApiKeyStore,
    generate_api_key,
    hash_api_key,
)
from conduit.auth.middleware import (
    INTERNAL_SERVICE_HEADER,
    OWNER_ID_HEADER,
    InternalCaller,
    require_internal_caller,
)
from conduit.auth.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitResult,
    WindowKind,
    get_rate_limiter,
)

__all__ = [
    # API keys
    "ApiKeyAuthenticator",
    "ApiKeyRecord",
    "ApiKeyStore",
    "PostgresApiKeyStore",
    "generate_api_key",
    "hash_api_key",
    # Internal callers
    "INTERNAL_SERVICE_HEADER",
    "OWNER_ID_HEADER",
    "InternalCaller",
    "require_internal_caller",
    # Rate limiting
    "FixedWindowRateLimiter",
    "RateLimitResult",
    "WindowKind",
    "get_rate_limiter",
]
