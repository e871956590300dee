"""ORM model for listings (annonces) and their moderation status."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from app.models.base import Base

STATUS_PENDING = "pending"
STATUS_VALIDATED = "validated"
STATUS_REJECTED = "rejected"
STATUSES = (STATUS_PENDING, STATUS_VALIDATED, STATUS_REJECTED)

DEFAULT_IMAGE_KEY = "default-annonce.jpg"


class Annonce(Base):
    """
    A classified ad posted by a user.

    user_id is set at creation and never updated. image holds a storage object key,
    or the default sentinel when the listing has no uploaded picture.
    """

    __tablename__ = "annonces"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'validated', 'rejected')",
            name="ck_annonces_status",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    titre = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    image = Column(String(1024), nullable=False, default=DEFAULT_IMAGE_KEY)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    rejection_reason = Column(Text, nullable=True)
    moderated_by = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    moderated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(DateTime(timezone=True), nullable=True)

    owner = relationship("User", back_populates="annonces", foreign_keys=[user_id])
