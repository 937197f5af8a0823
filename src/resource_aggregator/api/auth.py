"""Signed session-cookie auth for the training API."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
from pydantic import BaseModel

from resource_aggregator.exceptions import AuthenticationError


class TokenPayload(BaseModel):
    """Claims carried by a verified auth token."""

    user_id: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Create and verify HMAC-signed JWTs identifying a user.

    The user id is stored both as ``sub`` and ``userId`` so tokens minted
    by the web frontend verify too.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_hours: int = 24 * 7,
    ) -> None:
        if not secret_key:
            msg = "JWT secret key cannot be empty"
            raise ValueError(msg)
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire = timedelta(hours=expire_hours)

    def create_token(
        self,
        user_id: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        now = datetime.now(tz=UTC)
        payload = {
            "sub": user_id,
            "userId": user_id,
            "iat": now,
            "exp": now + (expires_delta or self._expire),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify_token(self, token: str) -> TokenPayload:
        """Decode ``token`` and return its claims.

        Raises:
            AuthenticationError: If the token is expired, tampered with, or
                missing a user id.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["exp"]},
            )
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid or expired token") from exc

        user_id = claims.get("userId") or claims.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise AuthenticationError("Invalid or expired token")
        return TokenPayload(
            user_id=user_id,
            issued_at=datetime.fromtimestamp(claims.get("iat", 0), tz=UTC),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=UTC),
        )


def require_user(token: str | None, service: TokenService) -> TokenPayload:
    """Validate the auth cookie value and return its claims."""
    if not token:
        raise AuthenticationError("Authentication required", status_code=401)
    return service.verify_token(token)
