from __future__ import annotations

import hashlib


def sha256_hexdigest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str) -> str:
    """Hash a secret or token string. Used for API keys, never reversible."""
    return sha256_hexdigest(text.encode("utf-8"))
