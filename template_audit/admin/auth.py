"""Tenant authentication for the audit API.

Each request carries the tenant's email-provider API key, either as
`Authorization: Bearer <key>` or `X-API-Key: <key>`. The key is hashed here
and only the derived tenant key is passed on.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from template_audit.audit.tenant import derive_tenant_key

bearer = HTTPBearer(auto_error=False)
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def get_tenant_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),  # noqa: B008
    api_key: str | None = Depends(api_key_header),  # noqa: B008
) -> str:
    """FastAPI dependency — resolve the caller's tenant key.

    Bearer token takes precedence over X-API-Key. Raises 401 when neither
    is present.
    """
    raw = credentials.credentials if credentials is not None else api_key
    if not raw or not raw.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required - send via Authorization: Bearer <key> or X-API-Key header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return derive_tenant_key(raw)
