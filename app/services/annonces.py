"""
Listing CRUD: field validation, ownership checks and image handling.

Ownership is enforced inside the UPDATE/DELETE statements themselves
(WHERE id = :id AND user_id = :caller), so a concurrent change between the
existence check and the write cannot bypass it. When a conditional write
matches no row, the row is re-read only to pick between 404 and 403.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.core.storage import ImageStorage, StorageError, build_object_key
from app.models import Annonce
from app.models.annonce import STATUS_VALIDATED
from app.schemas.annonce import (
    DESCRIPTION_MIN_LENGTH,
    TITRE_MAX_LENGTH,
    TITRE_MIN_LENGTH,
    AnnonceOut,
)
from app.schemas.auth import CurrentUser

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageUpload:
    """An uploaded image file, already read into memory."""

    filename: str | None
    content_type: str | None
    data: bytes


def _field_errors(titre: str | None, description: str | None) -> tuple[str, str, list[dict[str, str]]]:
    """Trim both fields and collect one error per invalid field."""
    titre = (titre or "").strip()
    description = (description or "").strip()
    errors: list[dict[str, str]] = []
    if not titre:
        errors.append({"field": "titre", "message": "Title is required."})
    elif not (TITRE_MIN_LENGTH <= len(titre) <= TITRE_MAX_LENGTH):
        errors.append(
            {
                "field": "titre",
                "message": f"Title must be between {TITRE_MIN_LENGTH} and {TITRE_MAX_LENGTH} characters.",
            }
        )
    if not description:
        errors.append({"field": "description", "message": "Description is required."})
    elif len(description) < DESCRIPTION_MIN_LENGTH:
        errors.append(
            {
                "field": "description",
                "message": f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters.",
            }
        )
    return titre, description, errors


def validate_annonce_fields(titre: str | None, description: str | None) -> tuple[str, str]:
    """Return trimmed (titre, description). Raises ValidationError naming each bad field."""
    titre, description, errors = _field_errors(titre, description)
    if errors:
        raise ValidationError.from_fields(errors)
    return titre, description


def _validate_image(image: ImageUpload, settings: "Settings") -> None:
    content_type = (image.content_type or "").lower()
    if not content_type.startswith("image/"):
        raise ValidationError.from_fields(
            [{"field": "image", "message": "Image must be an image file."}]
        )
    if not image.data:
        raise ValidationError.from_fields([{"field": "image", "message": "Image file is empty."}])
    if len(image.data) > settings.MAX_IMAGE_BYTES:
        raise ValidationError.from_fields(
            [
                {
                    "field": "image",
                    "message": f"Image must not exceed {settings.MAX_IMAGE_BYTES // (1024 * 1024)} MB.",
                }
            ]
        )


def to_annonce_out(annonce: Annonce, storage: ImageStorage, with_owner: bool = False) -> AnnonceOut:
    """Map an Annonce row to its API shape, resolving the image key to a URL."""
    return AnnonceOut(
        id=annonce.id,
        titre=annonce.titre,
        description=annonce.description,
        image=storage.image_url(annonce.image),
        user_id=annonce.user_id,
        username=annonce.owner.username if with_owner and annonce.owner is not None else None,
        status=annonce.status,
        rejection_reason=annonce.rejection_reason,
        created_at=annonce.created_at,
        updated_at=annonce.updated_at,
        moderated_at=annonce.moderated_at,
    )


def _newest_first(query):
    return query.order_by(Annonce.created_at.desc(), Annonce.id.desc())


def list_public(db: Session) -> list[Annonce]:
    """Validated listings, newest first."""
    return _newest_first(db.query(Annonce).filter(Annonce.status == STATUS_VALIDATED)).all()


def list_for_owner(db: Session, user_id: int) -> list[Annonce]:
    """All of one user's listings regardless of status, newest first."""
    return _newest_first(db.query(Annonce).filter(Annonce.user_id == user_id)).all()


def get_visible_annonce(db: Session, annonce_id: int, viewer: CurrentUser | None) -> Annonce:
    """
    Listing detail. Non-validated listings are only visible to their owner or an admin;
    anyone else gets NotFoundError so unpublished listings are not disclosed.
    """
    annonce = db.get(Annonce, annonce_id)
    if annonce is None:
        raise NotFoundError("Listing not found")
    if annonce.status != STATUS_VALIDATED:
        if viewer is None or not (viewer.is_admin or viewer.id == annonce.user_id):
            raise NotFoundError("Listing not found")
    return annonce


def _require_access(db: Session, annonce_id: int, user: CurrentUser, allow_admin: bool) -> Annonce:
    annonce = db.get(Annonce, annonce_id)
    if annonce is None:
        raise NotFoundError("Listing not found")
    if annonce.user_id != user.id and not (allow_admin and user.is_admin):
        raise AuthorizationError("You are not allowed to modify this listing")
    return annonce


def create_annonce(
    db: Session,
    storage: ImageStorage,
    settings: "Settings",
    owner: CurrentUser,
    titre: str | None,
    description: str | None,
    image: ImageUpload | None = None,
) -> Annonce:
    """
    Validate and insert a listing owned by the caller.

    The image (if any) is uploaded first; if the insert then fails, the uploaded
    object is removed before the error propagates.
    """
    titre, description = validate_annonce_fields(titre, description)
    if image is not None:
        _validate_image(image, settings)

    image_key = storage.default_key
    if image is not None:
        image_key = storage.upload(
            build_object_key(image.filename), image.data, image.content_type or "image/jpeg"
        )

    annonce = Annonce(
        titre=titre,
        description=description,
        image=image_key,
        user_id=owner.id,
        status=settings.ANNONCE_INITIAL_STATUS,
    )
    db.add(annonce)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        if not storage.is_default(image_key):
            try:
                storage.remove(image_key)
            except StorageError:
                logger.error("Orphaned image after failed insert: key=%s", image_key)
        raise
    db.refresh(annonce)
    logger.info(
        "Listing created: id=%s user_id=%s status=%s", annonce.id, owner.id, annonce.status
    )
    return annonce


def update_annonce(
    db: Session,
    annonce_id: int,
    user: CurrentUser,
    titre: str | None,
    description: str | None,
) -> Annonce:
    """
    Update titre/description of the caller's own listing; status and owner are untouched.

    404 and 403 take precedence over field validation errors.
    """
    titre, description, errors = _field_errors(titre, description)
    if errors:
        _require_access(db, annonce_id, user, allow_admin=False)
        raise ValidationError.from_fields(errors)

    updated = (
        db.query(Annonce)
        .filter(Annonce.id == annonce_id, Annonce.user_id == user.id)
        .update(
            {
                Annonce.titre: titre,
                Annonce.description: description,
                Annonce.updated_at: func.now(),
            },
            synchronize_session=False,
        )
    )
    if updated == 0:
        db.rollback()
        _require_access(db, annonce_id, user, allow_admin=False)
        raise NotFoundError("Listing not found")
    db.commit()
    annonce = db.get(Annonce, annonce_id, populate_existing=True)
    if annonce is None:
        raise NotFoundError("Listing not found")
    return annonce


def delete_annonce(db: Session, storage: ImageStorage, annonce_id: int, user: CurrentUser) -> None:
    """
    Delete a listing as its owner or as an admin.

    The stored image is removed first; if that fails the row is kept and StorageError
    propagates, so no row ever points at a deleted object.
    """
    annonce = _require_access(db, annonce_id, user, allow_admin=True)
    owner_id = annonce.user_id
    storage.remove(annonce.image)

    query = db.query(Annonce).filter(Annonce.id == annonce_id)
    if not user.is_admin:
        query = query.filter(Annonce.user_id == user.id)
    deleted = query.delete(synchronize_session=False)
    db.commit()
    if deleted == 0:
        raise NotFoundError("Listing not found")
    logger.info(
        "Listing deleted: id=%s by_user=%s as_admin=%s",
        annonce_id,
        user.id,
        owner_id != user.id,
    )
