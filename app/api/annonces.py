"""Listing endpoints: public browsing, the caller's own listings, and owner create/update/delete."""

import json
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.api.auth import get_current_user, get_optional_user
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.storage import ImageStorage, get_storage
from app.schemas.annonce import (
    AnnonceResponse,
    AnnoncesListResponse,
    AnnonceUpdate,
    MessageResponse,
)
from app.schemas.auth import CurrentUser
from app.services.annonces import (
    ImageUpload,
    create_annonce,
    delete_annonce,
    get_visible_annonce,
    list_for_owner,
    list_public,
    to_annonce_out,
    update_annonce,
)

router = APIRouter()


@router.get("", response_model=AnnoncesListResponse)
def get_public_annonces(
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
) -> AnnoncesListResponse:
    """Validated listings, newest first. No authentication required."""
    return AnnoncesListResponse(
        annonces=[to_annonce_out(a, storage) for a in list_public(db)]
    )


@router.get("/me", response_model=AnnoncesListResponse)
def get_my_annonces(
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> AnnoncesListResponse:
    """The caller's listings in every status (pending, validated, rejected)."""
    return AnnoncesListResponse(
        annonces=[to_annonce_out(a, storage) for a in list_for_owner(db, user.id)]
    )


@router.get("/{annonce_id}", response_model=AnnonceResponse)
def get_annonce(
    annonce_id: int,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    viewer: Annotated[CurrentUser | None, Depends(get_optional_user)],
) -> AnnonceResponse:
    annonce = get_visible_annonce(db, annonce_id, viewer)
    return AnnonceResponse(annonce=to_annonce_out(annonce, storage))


@router.post("", response_model=AnnonceResponse, status_code=status.HTTP_201_CREATED)
async def post_annonce(
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    settings: Annotated[Settings, Depends(get_settings)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
    titre: Annotated[str, Form()] = "",
    description: Annotated[str, Form()] = "",
    image: Annotated[UploadFile | None, File()] = None,
) -> AnnonceResponse:
    """
    Create a listing from a multipart form.

    - **titre**: 3 to 100 characters after trimming
    - **description**: at least 10 characters after trimming
    - **image** (optional): an image file up to MAX_IMAGE_BYTES, stored in Supabase Storage

    The new listing starts in ANNONCE_INITIAL_STATUS (pending by default) and only
    shows up in the public list once validated.
    """
    upload: ImageUpload | None = None
    # Browsers send an empty part when the file input is left blank.
    if image is not None and image.filename:
        # One byte past the limit is enough for the size check to reject it.
        upload = ImageUpload(
            filename=image.filename,
            content_type=image.content_type,
            data=await image.read(settings.MAX_IMAGE_BYTES + 1),
        )
    # Storage upload and DB commit are blocking calls.
    annonce = await run_in_threadpool(
        create_annonce, db, storage, settings, user, titre, description, upload
    )
    return AnnonceResponse(message="Listing created", annonce=to_annonce_out(annonce, storage))


def _form_text(value: object) -> str | None:
    return value if isinstance(value, str) else None


async def _read_update_fields(request: Request) -> AnnonceUpdate:
    """Edit fields from a JSON body or from form fields (multipart or urlencoded)."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in ("multipart/form-data", "application/x-www-form-urlencoded"):
        form = await request.form()
        return AnnonceUpdate(
            titre=_form_text(form.get("titre")) or "",
            description=_form_text(form.get("description")) or "",
        )
    raw = await request.body()
    if not raw:
        return AnnonceUpdate()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError.from_fields([{"field": "body", "message": "Invalid JSON."}]) from e
    if not isinstance(data, dict):
        raise ValidationError.from_fields(
            [{"field": "body", "message": "Body must be a JSON object."}]
        )
    try:
        return AnnonceUpdate.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError.from_fields(
            [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
        ) from e


@router.put(
    "/{annonce_id}",
    response_model=AnnonceResponse,
    openapi_extra={
        "requestBody": {
            "content": {
                "application/json": {"schema": AnnonceUpdate.model_json_schema()},
                "multipart/form-data": {"schema": AnnonceUpdate.model_json_schema()},
            }
        }
    },
)
async def put_annonce(
    annonce_id: int,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> AnnonceResponse:
    """Edit titre and description of one of the caller's listings. Status is kept.

    Accepts a JSON body or form fields with the same names.
    """
    body = await _read_update_fields(request)
    annonce = await run_in_threadpool(
        update_annonce, db, annonce_id, user, body.titre, body.description
    )
    return AnnonceResponse(message="Listing updated", annonce=to_annonce_out(annonce, storage))


@router.delete("/{annonce_id}", response_model=MessageResponse)
def remove_annonce(
    annonce_id: int,
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ImageStorage, Depends(get_storage)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> MessageResponse:
    """Delete a listing and its image. Allowed for the owner and for admins."""
    delete_annonce(db, storage, annonce_id, user)
    return MessageResponse(message="Listing deleted")
