"""
verify.py
---------
Purpose:
    Shared-secret verification for scheduler-triggered endpoints.

Notes:
    - The external scheduler sends `Authorization: Bearer {CRON_SECRET}`.
    - When CRON_SECRET is unset the check is skipped (local development).
    - Provides `cron_auth_dependency` for trigger routes.
"""

import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from civicmatch.config import settings

_security = HTTPBearer(auto_error=False)


def verify_cron_secret(token: str | None, secret: str | None) -> bool:
    if not secret:
        return True
    if not token:
        return False
    return hmac.compare_digest(token.encode(), secret.encode())


def cron_auth_dependency(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
) -> None:
    token = credentials.credentials if credentials else None
    if not verify_cron_secret(token, settings.CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def dev_only_dependency() -> None:
    """Developer endpoints are unavailable in production."""
    if settings.is_production:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Test endpoints are disabled in production",
        )
