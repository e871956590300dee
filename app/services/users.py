"""User accounts: registration, credential check and admin management."""

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError
from app.core.security import hash_password, verify_password
from app.core.storage import ImageStorage
from app.models import Annonce, User
from app.models.user import ROLE_USER

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def register_user(db: Session, username: str, email: str, password: str) -> User:
    """
    Create a 'user' account. Raises ConflictError if email or username is taken.
    Self-registration never grants the admin role.
    """
    username = username.strip()
    email = normalize_email(email)
    existing = (
        db.query(User)
        .filter(or_(User.email == email, User.username == username))
        .first()
    )
    if existing is not None:
        field = "email" if existing.email == email else "username"
        raise ConflictError(f"This {field} is already registered.", details={"field": field})

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=ROLE_USER,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("This email or username is already registered.") from e
    db.refresh(user)
    logger.info("User registered: id=%s username=%s", user.id, user.username)
    return user


def authenticate(db: Session, email: str, password: str) -> User | None:
    """Return the user for valid credentials, else None (unknown email and bad password look the same)."""
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def delete_user(db: Session, storage: ImageStorage, user_id: int, acting_admin_id: int) -> None:
    """
    Delete a user with all their listings and listing images.

    Images are removed before any row is deleted; a storage failure aborts the whole operation.
    """
    if user_id == acting_admin_id:
        raise AuthorizationError("Admins cannot delete their own account.")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    images = [
        key
        for (key,) in db.query(Annonce.image).filter(Annonce.user_id == user_id).all()
        if not storage.is_default(key)
    ]
    for key in images:
        storage.remove(key)

    deleted_annonces = (
        db.query(Annonce)
        .filter(Annonce.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.delete(user)
    db.commit()
    logger.info(
        "User deleted: id=%s by_admin=%s annonces_deleted=%s images_removed=%s",
        user_id,
        acting_admin_id,
        deleted_annonces,
        len(images),
    )
