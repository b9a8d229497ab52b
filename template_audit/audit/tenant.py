"""Tenant key derivation — one-way hash of a tenant's API credential.

The raw credential never reaches the engine or the database; every engine
call receives the derived key instead.
"""

from __future__ import annotations

import hashlib
import hmac

from template_audit.config import settings


def derive_tenant_key(api_key: str, pepper: str | None = None) -> str:
    """Return the hex digest identifying the tenant that owns `api_key`.

    SHA-256 by default; HMAC-SHA256 when a server-side pepper is configured.
    Stable across processes for the same key and pepper.
    """
    api_key = api_key.strip()
    if not api_key:
        msg = "API key must not be empty"
        raise ValueError(msg)

    secret = settings.security.tenant_key_pepper if pepper is None else pepper
    if secret:
        return hmac.new(secret.encode(), api_key.encode(), hashlib.sha256).hexdigest()
    return hashlib.sha256(api_key.encode()).hexdigest()
