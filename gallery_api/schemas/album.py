"""
Album-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from gallery_api.schemas.file import FileResponse
from gallery_api.services.storage import check_album_name

ALBUM_FLAGS = ("draft", "nsfw", "hidden", "favorite", "featured")


class AlbumBody(BaseModel):
    """
    Common album body.

    name is optional at the schema level so the handlers can answer a
    missing name with their own message.
    """

    name: Optional[StrictStr] = Field(None, max_length=255)
    draft: Optional[bool] = None
    nsfw: Optional[bool] = None
    hidden: Optional[bool] = None
    favorite: Optional[bool] = None
    featured: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def name_is_a_file_name(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else check_album_name(v)


class AlbumCreate(AlbumBody):
    """Schema for album creation. Unset flags default to false."""

    pass


class AlbumUpdate(AlbumBody):
    """Schema for updating an album. Unset flags keep their current value."""

    pass


class AlbumResponse(BaseModel):
    """Schema for album response."""

    id: str
    name: str
    draft: bool
    hidden: bool
    nsfw: bool
    favorite: bool
    featured: bool
    cover_id: Optional[str] = None
    cover_fallback_id: Optional[str] = None
    cover: Optional[FileResponse] = None
    cover_fallback: Optional[FileResponse] = None
    file_count: int = 0
    posted_at: Optional[datetime] = None
    created_at: datetime
    modified_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AlbumList(BaseModel):
    """Paginated album listing."""

    data: List[AlbumResponse]
    count: int
    pages: int


class IdsBody(BaseModel):
    """Body of the bulk delete endpoints."""

    ids: List[str]
