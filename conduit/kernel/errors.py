from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class ConduitError(Exception):
    """Base typed error for Conduit.

    Goals:
    - Stable `code` for programmatic handling across clients.
    - Human-readable `message` for API surfaces.
    - Optional `meta` payload for debugging (safe-to-expose only).
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        status_code: int = 500,
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(
                "Invalid Conduit error code. Expected dot-separated lowercase tokens, "
                f"got: {code!r}"
            )
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = int(status_code)
        self.meta = dict(meta or {})

    def to_public_dict(self, *, request_id: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            # Keep `detail` for compatibility with FastAPI error surfaces.
            "detail": self.message,
            "code": self.code,
        }
        if request_id:
            payload["request_id"] = request_id
        if self.meta:
            payload["meta"] = self.meta
        return payload


class NotFoundError(ConduitError):
    def __init__(self, *, message: str = "Not found", code: str = "resource.not_found", meta: dict[str, Any] | None = None):
        super().__init__(code=code, message=message, status_code=404, meta=meta)


class UnauthorizedError(ConduitError):
    def __init__(
        self,
        *,
        message: str = "Not authenticated",
        code: str = "auth.unauthorized",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=401, meta=meta)


class ForbiddenError(ConduitError):
    def __init__(
        self,
        *,
        message: str = "Forbidden",
        code: str = "auth.forbidden",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=403, meta=meta)


class ConflictError(ConduitError):
    def __init__(
        self,
        *,
        message: str = "Conflict",
        code: str = "request.conflict",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=409, meta=meta)


class ValidationError(ConduitError):
    def __init__(
        self,
        *,
        message: str = "Validation error",
        code: str = "request.validation_error",
        meta: dict[str, Any] | None = None,
        status_code: int = 422,
    ):
        super().__init__(code=code, message=message, status_code=status_code, meta=meta)


class RateLimitedError(ConduitError):
    def __init__(
        self,
        *,
        retry_after_seconds: int,
        message: str | None = None,
        code: str = "rate_limit.exceeded",
        meta: dict[str, Any] | None = None,
    ):
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        super().__init__(
            code=code,
            message=message or f"Rate limit exceeded. Retry after {self.retry_after_seconds} seconds",
            status_code=429,
            meta={"retry_after": self.retry_after_seconds, **(meta or {})},
        )


class HandlerError(ConduitError):
    """Business logic behind a function or job handler raised."""

    def __init__(
        self,
        *,
        message: str = "Handler failed",
        code: str = "handler.error",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=500, meta=meta)


class InfrastructureError(ConduitError):
    """Datastore (Postgres/Redis) unreachable or a statement failed."""

    def __init__(
        self,
        *,
        message: str = "Datastore unavailable",
        code: str = "infrastructure.unavailable",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=503, meta=meta)


class UpstreamError(ConduitError):
    def __init__(
        self,
        *,
        message: str = "Upstream service error",
        code: str = "upstream.error",
        meta: dict[str, Any] | None = None,
        status_code: int = 502,
    ):
        super().__init__(code=code, message=message, status_code=status_code, meta=meta)
