"""
Identity assertion utilities.

Bearer assertions are HS256 JWTs issued by the identity provider. The
backend only needs the subject (external uid) and the verified email.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from delivery_backend.app.core.config import settings


def create_identity_token(
    subject: str,
    email: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Mint an identity assertion.

    Production assertions come from the identity provider; this is used by
    the seed script and by tests.

    Args:
        subject: External identity subject (stored as ``Account.uid``)
        email: Verified email of the subject
        expires_delta: Optional custom expiration time
        extra_claims: Additional claims (name, picture, provider...)

    Returns:
        Encoded JWT string
    """
    to_encode: Dict[str, Any] = dict(extra_claims or {})
    to_encode.update({"sub": subject, "email": email})

    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.identity_token_expire_minutes)
    )
    to_encode["exp"] = expire

    return jwt.encode(to_encode, settings.identity_secret_key, algorithm=settings.identity_algorithm)


def verify_identity_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify an identity assertion.

    Args:
        token: JWT string taken from the Authorization header

    Returns:
        ``{"email", "subject", "exp"}`` if signature, expiry and required
        claims are valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.identity_secret_key,
            algorithms=[settings.identity_algorithm],
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    email = payload.get("email")
    if not subject or not email:
        return None

    return {"email": email.lower(), "subject": subject, "exp": payload.get("exp")}
