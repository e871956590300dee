"""Admin-only endpoints: listing moderation and user management."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.auth import require_admin
from app.core.database import get_db
from app.core.storage import ImageStorage, get_storage
from app.schemas.annonce import (
    AnnonceResponse,
    AnnoncesListResponse,
    AnnonceStatus,
    MessageResponse,
    RejectRequest,
)
from app.schemas.auth import CurrentUser, UserOut, UsersListResponse
from app.services.annonces import delete_annonce, to_annonce_out
from app.services.moderation import list_for_review, reject_annonce, validate_annonce
from app.services.users import delete_user, list_users

router = APIRouter()


def _review_list(db: Session, storage: ImageStorage, status: str | None) -> AnnoncesListResponse:
    return AnnoncesListResponse(
        annonces=[to_annonce_out(a, storage, with_owner=True) for a in list_for_review(db, status)]
    )


@router.get("/annonces", response_model=AnnoncesListResponse)
def get_all_annonces(
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    status: Annotated[AnnonceStatus | None, Query()] = None,
) -> AnnoncesListResponse:
    """Every listing with its owner's username, newest first; optionally filtered by ?status=."""
    return _review_list(db, storage, status)


@router.get("/annonces/{status}", response_model=AnnoncesListResponse)
def get_annonces_by_status(
    status: AnnonceStatus,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> AnnoncesListResponse:
    """Review queues: /annonces/pending, /annonces/validated, /annonces/rejected."""
    return _review_list(db, storage, status)


@router.put("/annonces/{annonce_id}/validate", response_model=AnnonceResponse)
def put_validate(
    annonce_id: int,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    admin: Annotated[CurrentUser, Depends(require_admin)],
) -> AnnonceResponse:
    """Publish a pending listing. Repeating it on a validated listing changes nothing."""
    annonce = validate_annonce(db, annonce_id, admin)
    return AnnonceResponse(
        message="Listing validated", annonce=to_annonce_out(annonce, storage, with_owner=True)
    )


@router.put("/annonces/{annonce_id}/reject", response_model=AnnonceResponse)
def put_reject(
    annonce_id: int,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    admin: Annotated[CurrentUser, Depends(require_admin)],
    body: RejectRequest | None = None,
) -> AnnonceResponse:
    """Reject a pending listing; the reason is stored and shown to its owner."""
    reason = body.reason if body is not None else None
    annonce = reject_annonce(db, annonce_id, admin, reason)
    return AnnonceResponse(
        message="Listing rejected", annonce=to_annonce_out(annonce, storage, with_owner=True)
    )


@router.delete("/annonces/{annonce_id}", response_model=MessageResponse)
def remove_annonce(
    annonce_id: int,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    admin: Annotated[CurrentUser, Depends(require_admin)],
) -> MessageResponse:
    delete_annonce(db, storage, annonce_id, admin)
    return MessageResponse(message="Listing deleted")


@router.get("/users", response_model=UsersListResponse)
def get_users(
    db: Annotated[Session, Depends(get_db)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> UsersListResponse:
    """List all users (admin only), newest first, without password hashes."""
    return UsersListResponse(users=[UserOut.model_validate(u) for u in list_users(db)])


@router.delete("/users/{user_id}", response_model=MessageResponse)
def remove_user(
    user_id: int,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    admin: Annotated[CurrentUser, Depends(require_admin)],
) -> MessageResponse:
    """Delete a user together with their listings and listing images."""
    delete_user(db, storage, user_id, admin.id)
    return MessageResponse(message="User deleted")
