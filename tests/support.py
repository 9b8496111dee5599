"""Shared test helpers: in-memory SQLite sessions, users and a mocked media store."""

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import Base, User
from app.services.media_store import MediaAsset

AVATAR = MediaAsset(url="https://res.cloudinary.com/demo/image/upload/avatars/ann.png", public_id="avatars/ann")
COVER = MediaAsset(url="https://res.cloudinary.com/demo/image/upload/covers/ann.png", public_id="covers/ann")


def make_session_factory() -> sessionmaker:
    """Fresh in-memory database with all tables; one connection shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_media(*uploads: object) -> MagicMock:
    """Media store mock; each upload call returns (or raises) the next item in uploads."""
    media = MagicMock()
    media.upload = AsyncMock(side_effect=list(uploads))
    media.delete = AsyncMock(return_value=True)
    return media


def add_user(
    db: Session,
    username: str = "annlee",
    email: str = "ann@x.com",
    password: str = "secret1",
    full_name: str = "Ann Lee",
) -> User:
    user = User(
        username=username,
        email=email,
        full_name=full_name,
        avatar_url=AVATAR.url,
    )
    user.set_password(password)
    db.add(user)
    db.commit()
    return user


class DatabaseTestCase(unittest.TestCase):
    """Gives each test its own database and a cheap bcrypt cost."""

    def setUp(self) -> None:
        rounds = patch("app.core.security.BCRYPT_ROUNDS", 4)
        rounds.start()
        self.addCleanup(rounds.stop)
        self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()
        self.addCleanup(self.db.close)
