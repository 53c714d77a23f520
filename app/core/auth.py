"""
Bearer token handling.

Tokens are HS256 JWTs issued by the hosted auth provider. ``sub`` is the
user id; admin capability comes from the configured admin emails or the
``app_metadata.role`` claim.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import UnauthorizedError


class AuthenticatedUser(BaseModel):
    """Caller identity resolved from a bearer token."""
    id: str
    email: Optional[str] = None
    is_admin: bool = False


def _is_admin(email: Optional[str], claims: dict[str, Any]) -> bool:
    if email and email.lower() in {e.lower() for e in settings.admin_emails}:
        return True
    app_metadata = claims.get("app_metadata") or {}
    return isinstance(app_metadata, dict) and app_metadata.get("role") == "admin"


def decode_access_token(token: str) -> AuthenticatedUser:
    """
    Validate a JWT and build the caller identity.

    Raises:
        UnauthorizedError: If the token is invalid, expired or has no subject
    """
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except JWTError:
        raise UnauthorizedError("Could not validate credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    email = payload.get("email")
    return AuthenticatedUser(id=str(user_id), email=email, is_admin=_is_admin(email, payload))


def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    role: Optional[str] = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Issue a token in the auth provider's format (scripts and tests)."""
    claims: dict[str, Any] = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if email:
        claims["email"] = email
    if role:
        claims["app_metadata"] = {"role": role}
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
