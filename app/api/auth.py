"""Register, login and refresh endpoints, plus auth dependencies (get_current_user, require_admin)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.rate_limit import limiter, login_rate_limit
from app.core.security import (
    InvalidTokenError,
    create_access_token,
    create_token_pair,
    decode_access_token,
    decode_refresh_token,
)
from app.models.user import ROLE_ADMIN, User
from app.schemas.auth import (
    AccessTokenResponse,
    CurrentUser,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserOut,
)
from app.services.users import authenticate, register_user

router = APIRouter()
security = HTTPBearer(auto_error=False)


def _token_pair_response(user: User, settings: Settings) -> TokenPairResponse:
    access_token, refresh_token = create_token_pair(user.id, user.role, user.username, settings)
    return TokenPairResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserOut.model_validate(user),
    )


@router.post("/register", response_model=TokenPairResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenPairResponse:
    """Create a user account and return a token pair so the client is signed in right away."""
    user = register_user(db, body.username, body.email, body.password)
    return _token_pair_response(user, settings)


@router.post("/login", response_model=TokenPairResponse)
@limiter.limit(login_rate_limit)
def login(
    request: Request,
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenPairResponse:
    """
    Authenticate with email and password; returns access and refresh tokens.
    Include the access token in the Authorization header as: Bearer <accessToken>
    Limited per client IP (LOGIN_RATE_LIMIT); over the limit returns 429.
    """
    user = authenticate(db, body.email, body.password)
    if user is None:
        raise AuthenticationError("Invalid email or password.")
    return _token_pair_response(user, settings)


@router.post("/refresh", response_model=AccessTokenResponse)
def refresh(
    body: RefreshRequest,
    settings: Annotated[Settings, Depends(get_settings)],
) -> AccessTokenResponse:
    """Mint a new access token from a valid refresh token, without re-checking credentials."""
    claims = decode_refresh_token(body.refresh_token, settings)
    token = create_access_token(claims.user_id, claims.role, claims.username, settings)
    return AccessTokenResponse(access_token=token)


def _verify_bearer(request: Request, token: str, settings: Settings) -> CurrentUser:
    try:
        claims = decode_access_token(token, settings)
    except InvalidTokenError as e:
        raise AuthenticationError("Invalid or expired token") from e
    request.state.user_id = claims.user_id
    return CurrentUser(id=claims.user_id, username=claims.username, role=claims.role)


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CurrentUser:
    """Dependency: require a valid 'Bearer <access token>' header. Raises 401 if missing or invalid."""
    if credentials is None:
        raise AuthenticationError("Missing or malformed token")
    return _verify_bearer(request, credentials.credentials, settings)


def get_optional_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CurrentUser | None:
    """Dependency for public routes that show more to signed-in users. A bad token is still a 401."""
    if credentials is None:
        return None
    return _verify_bearer(request, credentials.credentials, settings)


def require_admin(
    current_user: Annotated[CurrentUser | None, Depends(get_current_user)],
) -> CurrentUser:
    """Dependency: require authenticated user with role 'admin'. Raises 403 for non-admin."""
    if current_user is None:
        raise AuthenticationError("Not authenticated")
    if current_user.role != ROLE_ADMIN:
        raise AuthorizationError("Admin access required")
    return current_user
