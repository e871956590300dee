"""Pydantic request/response schemas."""

from app.schemas.annonce import (
    AnnonceOut,
    AnnonceResponse,
    AnnoncesListResponse,
    AnnonceStatus,
    AnnonceUpdate,
    MessageResponse,
    RejectRequest,
)
from app.schemas.auth import (
    AccessTokenResponse,
    CurrentUser,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserOut,
    UsersListResponse,
)
from app.schemas.health import HealthResponse

__all__ = [
    "AccessTokenResponse",
    "AnnonceOut",
    "AnnonceResponse",
    "AnnoncesListResponse",
    "AnnonceStatus",
    "AnnonceUpdate",
    "CurrentUser",
    "HealthResponse",
    "LoginRequest",
    "MessageResponse",
    "RefreshRequest",
    "RegisterRequest",
    "RejectRequest",
    "TokenPairResponse",
    "UserOut",
    "UsersListResponse",
]
