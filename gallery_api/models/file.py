"""
File model for stored gallery images and album covers.
The bytes live under the static root, the database only keeps metadata.
"""
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gallery_api.database import Base
from gallery_api.models.base import generate_id, utcnow

if TYPE_CHECKING:
    from gallery_api.models.album import Album


class File(Base):
    """Image metadata. Cover images have no album."""

    __tablename__ = "files"
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    extname: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    album_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("albums.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    album: Mapped[Optional["Album"]] = relationship(
        "Album", lazy="raise"
    )

    @property
    def mimetype(self) -> str:
        return f"image/{self.type or 'octet-stream'}"

    def __repr__(self) -> str:
        return f"<File(id={self.id}, name={self.name})>"


# Case-insensitive uniqueness of file names
Index("ix_files_name_lower", func.lower(File.name), unique=True)
