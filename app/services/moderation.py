"""
Admin moderation of listings: pending -> validated, pending -> rejected.

Each transition is one conditional UPDATE restricted to its allowed source
states. Validating an already validated listing is a no-op, and re-rejecting a
rejected listing only replaces the reason. validated <-> rejected is refused
with ConflictError: a listing is re-reviewed by deleting and resubmitting it.
"""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import Annonce
from app.models.annonce import (
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_VALIDATED,
    STATUSES,
)
from app.schemas.annonce import REJECTION_REASON_MAX_LENGTH
from app.schemas.auth import CurrentUser

logger = logging.getLogger(__name__)

# Source states from which each transition may fire.
VALIDATE_FROM = frozenset({STATUS_PENDING})
REJECT_FROM = frozenset({STATUS_PENDING, STATUS_REJECTED})


def list_for_review(db: Session, status: str | None = None) -> list[Annonce]:
    """All listings (optionally one status) with their owner loaded, newest first."""
    query = db.query(Annonce).options(joinedload(Annonce.owner))
    if status is not None:
        if status not in STATUSES:
            raise ValidationError.from_fields(
                [{"field": "status", "message": f"Status must be one of {', '.join(STATUSES)}."}]
            )
        query = query.filter(Annonce.status == status)
    return query.order_by(Annonce.created_at.desc(), Annonce.id.desc()).all()


def _transition(
    db: Session,
    annonce_id: int,
    allowed_from: frozenset[str],
    values: dict,
) -> int:
    return (
        db.query(Annonce)
        .filter(Annonce.id == annonce_id, Annonce.status.in_(sorted(allowed_from)))
        .update(values, synchronize_session=False)
    )


def _reload(db: Session, annonce_id: int) -> Annonce:
    annonce = db.get(Annonce, annonce_id, populate_existing=True)
    if annonce is None:
        raise NotFoundError("Listing not found")
    return annonce


def validate_annonce(db: Session, annonce_id: int, admin: CurrentUser) -> Annonce:
    """Publish a pending listing. Idempotent on an already validated listing."""
    updated = _transition(
        db,
        annonce_id,
        VALIDATE_FROM,
        {
            Annonce.status: STATUS_VALIDATED,
            Annonce.rejection_reason: None,
            Annonce.moderated_by: admin.id,
            Annonce.moderated_at: func.now(),
        },
    )
    if updated == 0:
        db.rollback()
        annonce = _reload(db, annonce_id)
        if annonce.status == STATUS_VALIDATED:
            return annonce
        raise ConflictError(
            f"Cannot validate a listing with status '{annonce.status}'.",
            details={"status": annonce.status},
        )
    db.commit()
    logger.info("Listing validated: id=%s by_admin=%s", annonce_id, admin.id)
    return _reload(db, annonce_id)


def reject_annonce(db: Session, annonce_id: int, admin: CurrentUser, reason: str | None) -> Annonce:
    """Reject a pending listing with a mandatory reason; re-rejecting replaces the reason."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError.from_fields(
            [{"field": "reason", "message": "A rejection reason is required."}]
        )
    if len(reason) > REJECTION_REASON_MAX_LENGTH:
        raise ValidationError.from_fields(
            [
                {
                    "field": "reason",
                    "message": f"Reason must be at most {REJECTION_REASON_MAX_LENGTH} characters.",
                }
            ]
        )
    updated = _transition(
        db,
        annonce_id,
        REJECT_FROM,
        {
            Annonce.status: STATUS_REJECTED,
            Annonce.rejection_reason: reason,
            Annonce.moderated_by: admin.id,
            Annonce.moderated_at: func.now(),
        },
    )
    if updated == 0:
        db.rollback()
        annonce = _reload(db, annonce_id)
        raise ConflictError(
            f"Cannot reject a listing with status '{annonce.status}'.",
            details={"status": annonce.status},
        )
    db.commit()
    logger.info("Listing rejected: id=%s by_admin=%s", annonce_id, admin.id)
    return _reload(db, annonce_id)
