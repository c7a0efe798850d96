"""
Identity gate dependencies for FastAPI.

Resolves the bearer assertion to a verified identity and, where a role is
needed, to the caller's Account row.
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from delivery_backend.app.core.exceptions import (
    AuthenticationError,
    IdentityVerificationError,
    InsufficientPermissionsError,
)
from delivery_backend.app.core.jwt import verify_identity_token
from delivery_backend.app.core.redis_client import get_redis
from delivery_backend.app.core.token_revocation import is_token_revoked
from delivery_backend.app.db.session import get_db
from delivery_backend.app.models.account import Account

# auto_error=False so a missing header is reported as 401 by us, not 403 by FastAPI
security = HTTPBearer(auto_error=False)


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    redis_client=Depends(get_redis),
) -> dict:
    """
    FastAPI dependency that verifies the bearer assertion.

    Checks:
    1. An ``Authorization: Bearer <token>`` header is present (else 401)
    2. Signature, expiry and ``sub``/``email`` claims are valid (else 403)
    3. The assertion has not been revoked by logout (else 403)

    Returns:
        ``{"email", "subject", "exp", "token"}``
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing or malformed bearer assertion")

    token = credentials.credentials
    identity = verify_identity_token(token)
    if identity is None:
        raise IdentityVerificationError()

    if await is_token_revoked(redis_client, token):
        raise IdentityVerificationError("Identity assertion has been revoked")

    identity["token"] = token
    return identity


async def get_current_account(
    identity: dict = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """
    FastAPI dependency resolving the verified identity to its Account.

    A verified caller without an Account has no role, which is reported as
    Forbidden rather than Unauthenticated.
    """
    result = await db.execute(select(Account).where(Account.email == identity["email"]))
    account = result.scalar_one_or_none()

    if account is None:
        raise InsufficientPermissionsError("No account is registered for this identity")

    return account
