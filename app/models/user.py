"""ORM model for user accounts."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from app.core.security import hash_password, verify_password
from app.models.base import Base


class User(Base):
    """
    User account with profile media and the single active refresh token.

    username and email are stored lowercase and are unique. refresh_token holds
    only the most recently issued refresh token; issuing a new one replaces it.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    avatar_url = Column(String(2048), nullable=False)
    cover_image_url = Column(String(2048), nullable=True)
    refresh_token = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def set_password(self, plain_password: str) -> None:
        self.password_hash = hash_password(plain_password)

    def is_password_correct(self, plain_password: str) -> bool:
        return verify_password(plain_password, self.password_hash)
