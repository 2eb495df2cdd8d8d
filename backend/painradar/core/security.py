from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, status

from painradar.core.config import settings


async def require_cron_secret(
    x_cron_secret: str | None = Header(None, alias="x-cron-secret"),
) -> None:
    """Reject scheduler calls that do not carry the shared secret."""
    if not settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cron secret is not configured",
        )
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, settings.cron_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
