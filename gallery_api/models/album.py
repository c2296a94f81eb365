"""
Album model for grouping gallery files.
"""
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gallery_api.database import Base
from gallery_api.models.base import generate_id, utcnow

if TYPE_CHECKING:
    from gallery_api.models.file import File


class Album(Base):
    """
    Album model.

    cover_id and cover_fallback_id point at files without a database level
    foreign key (files already reference albums); the relationships below are
    read-only joins.
    """

    __tablename__ = "albums"
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Flags
    draft: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    nsfw: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    favorite: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Covers
    cover_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    cover_fallback_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Timestamps
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # Relationships
    cover: Mapped[Optional["File"]] = relationship(
        "File",
        primaryjoin="foreign(Album.cover_id) == File.id",
        viewonly=True,
        lazy="raise",
    )
    cover_fallback: Mapped[Optional["File"]] = relationship(
        "File",
        primaryjoin="foreign(Album.cover_fallback_id) == File.id",
        viewonly=True,
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<Album(id={self.id}, name={self.name})>"


# Case-insensitive uniqueness of album names
Index("ix_albums_name_lower", func.lower(Album.name), unique=True)
