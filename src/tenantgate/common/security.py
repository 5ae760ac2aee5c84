"""Admin key authentication dependencies."""

import hmac
from typing import Optional

from fastapi import Header, HTTPException


async def require_super_admin(
    x_tenantgate_admin_key: Optional[str] = Header(None, alias="X-TenantGate-Admin-Key"),
) -> str:
    """FastAPI dependency that validates the super-admin key from header."""
    from tenantgate.common.config import get_settings

    settings = get_settings()
    if not x_tenantgate_admin_key:
        raise HTTPException(status_code=403, detail="Missing super-admin key")
    if not hmac.compare_digest(
        x_tenantgate_admin_key.encode(), settings.super_admin_key.encode()
    ):
        raise HTTPException(status_code=403, detail="Invalid super-admin key")
    return x_tenantgate_admin_key
