"""
User models.
Profile data and credentials are stored in separate tables sharing the id.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from gallery_api.database import Base
from gallery_api.models.base import generate_id, utcnow


class UserMetadata(Base):
    """Public profile of a user."""

    __tablename__ = "user_metadata"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    avatar: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<UserMetadata(id={self.id}, role={self.role})>"


class UserCredentials(Base):
    """Login credentials. The password column holds a bcrypt hash."""

    __tablename__ = "user_credentials"

    id: Mapped[str] = mapped_column(
        String(32), ForeignKey("user_metadata.id", ondelete="CASCADE"), primary_key=True
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<UserCredentials(id={self.id})>"
