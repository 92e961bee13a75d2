"""Bearer token authentication.

Tokens are HS256 JWTs whose ``sub`` claim is a stable opaque user id; every
token carries ``iat`` and ``exp`` and is rejected once expired.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...core.domain.chat import utc_now
from ...core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_EXPIRE_MINUTES = 60

bearer_scheme = HTTPBearer(auto_error=False)


class TokenAuthProvider:
    """Issues and verifies signed JWT bearer tokens."""

    def __init__(self, secret_key: str, expire_minutes: int = DEFAULT_EXPIRE_MINUTES):
        """Initialize the provider.

        Args:
            secret_key: HMAC signing key
            expire_minutes: Lifetime of issued tokens
        """
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret = secret_key
        self.expire_minutes = expire_minutes

    def issue_token(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        """Create a bearer token for ``user_id``.

        Args:
            user_id: Subject of the token
            expires_delta: Custom lifetime, overriding the configured one
        """
        if not user_id:
            raise ValueError("user_id is required")

        issued_at = utc_now()
        expire = issued_at + (expires_delta or timedelta(minutes=self.expire_minutes))
        payload = {
            "sub": user_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp()),
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify_token(self, token: str) -> str:
        """Resolve a bearer token to its user id.

        Raises:
            UnauthorizedError: If the token is malformed, forged or expired
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise UnauthorizedError("Bearer token expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected bearer token: {e}")
            raise UnauthorizedError("Invalid bearer token") from e

        user_id = payload["sub"]
        if not isinstance(user_id, str) or not user_id:
            raise UnauthorizedError("Invalid bearer token")
        return user_id


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """FastAPI dependency resolving the authenticated user id."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Authentication required")
    return request.app.state.services.auth.verify_token(credentials.credentials)
