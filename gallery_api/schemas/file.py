"""
File-related Pydantic schemas for responses.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class FileAlbum(BaseModel):
    """Short album reference embedded in file listings."""

    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class FileResponse(BaseModel):
    """Schema for file response."""

    id: str
    name: str
    extname: str
    type: Optional[str] = None
    size: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    album_id: Optional[str] = None
    created_at: datetime
    modified_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FileWithAlbum(FileResponse):
    album: Optional[FileAlbum] = None


class FileList(BaseModel):
    """Paginated file listing."""

    data: List[FileWithAlbum]
    count: int
    pages: int
