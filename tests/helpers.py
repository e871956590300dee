"""Shared test support: in-memory SQLite database, mocked Supabase client, user/listing factories."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import jwt
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import get_db
from app.core.rate_limit import limiter
from app.core.security import create_access_token, hash_password
from app.core.storage import ImageStorage, get_storage
from app.main import app
from app.models import Annonce, Base, User
from app.schemas.auth import CurrentUser

PASSWORD = "correct-horse-battery"
PUBLIC_URL_BASE = "https://cdn.example.test/ANNONCES-IMAGES"


def make_engine():
    """Single shared in-memory SQLite connection with foreign keys enforced."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def make_storage_client() -> MagicMock:
    """MagicMock standing in for supabase.Client; public URLs are deterministic."""
    client = MagicMock()
    bucket = client.storage.from_.return_value
    bucket.get_public_url.side_effect = lambda key: f"{PUBLIC_URL_BASE}/{key}"
    return client


def expired_access_token(user: CurrentUser) -> str:
    settings = get_settings()
    past = datetime.now(UTC) - timedelta(hours=2)
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "username": user.username,
        "type": "access",
        "iat": past,
        "exp": past + timedelta(minutes=5),
    }
    return jwt.encode(
        payload,
        settings.JWT_ACCESS_SECRET.get_secret_value(),
        algorithm=settings.JWT_ALGORITHM,
    )


class ApiTestCase(unittest.TestCase):
    """Runs the real app against SQLite and a mocked storage bucket."""

    def setUp(self) -> None:
        rounds = patch("app.core.security.BCRYPT_ROUNDS", 4)
        rounds.start()
        self.addCleanup(rounds.stop)

        limiter.reset()
        self.engine = make_engine()
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        self.settings = get_settings()
        self.storage_client = make_storage_client()
        self.bucket = self.storage_client.storage.from_.return_value
        self.storage = ImageStorage(self.settings, client=self.storage_client)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_storage] = lambda: self.storage
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def create_user(
        self, username: str, email: str | None = None, role: str = "user"
    ) -> CurrentUser:
        db = self.SessionLocal()
        try:
            user = User(
                username=username,
                email=email or f"{username}@example.org",
                password_hash=hash_password(PASSWORD),
                role=role,
            )
            db.add(user)
            db.commit()
            return CurrentUser(id=user.id, username=user.username, role=user.role)
        finally:
            db.close()

    def auth_headers(self, user: CurrentUser) -> dict[str, str]:
        token = create_access_token(user.id, user.role, user.username, self.settings)
        return {"Authorization": f"Bearer {token}"}

    def create_annonce(
        self,
        owner: CurrentUser,
        titre: str = "Vélo de ville",
        description: str = "Vélo en bon état, pneus neufs.",
        status: str = "pending",
        image: str = "default-annonce.jpg",
        rejection_reason: str | None = None,
    ) -> int:
        db = self.SessionLocal()
        try:
            annonce = Annonce(
                titre=titre,
                description=description,
                image=image,
                user_id=owner.id,
                status=status,
                rejection_reason=rejection_reason,
            )
            db.add(annonce)
            db.commit()
            return annonce.id
        finally:
            db.close()

    def load_annonce(self, annonce_id: int) -> Annonce | None:
        db = self.SessionLocal()
        try:
            annonce = db.get(Annonce, annonce_id)
            if annonce is not None:
                db.expunge(annonce)
            return annonce
        finally:
            db.close()
