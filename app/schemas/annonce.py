"""Pydantic schemas for listings and moderation requests/responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

AnnonceStatus = Literal["pending", "validated", "rejected"]

TITRE_MIN_LENGTH = 3
TITRE_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 10
REJECTION_REASON_MAX_LENGTH = 500


class AnnonceUpdate(BaseModel):
    """
    Body of PUT /annonces/{id}, sent as JSON or as form fields.

    Lengths are checked by the service so that every failure is reported per field.
    """

    titre: str = Field(default="", description="Listing title (3-100 chars, trimmed)")
    description: str = Field(default="", description="Listing description (10+ chars, trimmed)")


class RejectRequest(BaseModel):
    """Body of PUT /admin/annonces/{id}/reject."""

    reason: str = Field(
        default="",
        description=f"Why the listing was rejected (1-{REJECTION_REASON_MAX_LENGTH} chars).",
    )


class AnnonceOut(BaseModel):
    """Listing as returned to clients; image is a browsable URL, not a storage key."""

    id: int
    titre: str
    description: str
    image: str = Field(..., description="Public image URL (or the default image URL)")
    user_id: int
    username: str | None = Field(default=None, description="Owner username (admin views)")
    status: AnnonceStatus
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    moderated_at: datetime | None = None


class AnnonceResponse(BaseModel):
    """Single listing, optionally with a human-readable message."""

    message: str | None = None
    annonce: AnnonceOut


class AnnoncesListResponse(BaseModel):
    annonces: list[AnnonceOut]


class MessageResponse(BaseModel):
    message: str
