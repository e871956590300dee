"""Password hashing and JWT creation/verification for access and refresh tokens."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

import bcrypt
import jwt

from app.core.config import Settings
from app.core.exceptions import AuthenticationError

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12

USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 30
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

TokenType = Literal["access", "refresh"]


class InvalidTokenError(AuthenticationError):
    """Token signature, expiry, type or payload check failed."""


@dataclass(frozen=True)
class TokenClaims:
    """Identity asserted by a verified token."""

    user_id: int
    role: str
    username: str


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def _secret_for(token_type: TokenType, settings: Settings) -> str:
    if token_type == "access":
        return settings.JWT_ACCESS_SECRET.get_secret_value()
    return settings.JWT_REFRESH_SECRET.get_secret_value()


def _create_token(
    token_type: TokenType,
    user_id: int,
    role: str,
    username: str,
    lifetime: timedelta,
    settings: Settings,
) -> str:
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "username": username,
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(
        payload,
        _secret_for(token_type, settings),
        algorithm=settings.JWT_ALGORITHM,
    )


def create_access_token(user_id: int, role: str, username: str, settings: Settings) -> str:
    """Create a short-lived access token used on every protected request."""
    return _create_token(
        "access",
        user_id,
        role,
        username,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        settings,
    )


def create_refresh_token(user_id: int, role: str, username: str, settings: Settings) -> str:
    """Create a longer-lived refresh token, only accepted by the refresh endpoint."""
    return _create_token(
        "refresh",
        user_id,
        role,
        username,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        settings,
    )


def create_token_pair(
    user_id: int, role: str, username: str, settings: Settings
) -> tuple[str, str]:
    """Return (access_token, refresh_token) for an authenticated user."""
    return (
        create_access_token(user_id, role, username, settings),
        create_refresh_token(user_id, role, username, settings),
    )


def _decode(token: str, token_type: TokenType, settings: Settings) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            _secret_for(token_type, settings),
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.PyJWTError as e:
        raise InvalidTokenError("Invalid or expired token") from e
    if payload.get("type") != token_type:
        raise InvalidTokenError("Invalid token type")
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as e:
        raise InvalidTokenError("Invalid token payload") from e
    role = payload.get("role")
    if role not in ("user", "admin"):
        raise InvalidTokenError("Invalid token payload")
    return TokenClaims(user_id=user_id, role=role, username=str(payload.get("username") or ""))


def decode_access_token(token: str, settings: Settings) -> TokenClaims:
    """
    Decode and validate an access JWT; return its claims.
    Raises InvalidTokenError on invalid, expired or non-access token.
    """
    return _decode(token, "access", settings)


def decode_refresh_token(token: str, settings: Settings) -> TokenClaims:
    """Same contract as decode_access_token, against the refresh secret."""
    return _decode(token, "refresh", settings)
