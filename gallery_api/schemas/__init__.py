"""
Pydantic schemas package.
All schemas are exported here for easy import.
"""
from gallery_api.schemas.album import (
    AlbumCreate,
    AlbumList,
    AlbumResponse,
    AlbumUpdate,
    IdsBody,
)
from gallery_api.schemas.file import (
    FileAlbum,
    FileList,
    FileResponse,
)
from gallery_api.schemas.user import (
    LoginResponse,
    PasswordUpdate,
    TokenPayload,
    UserCreate,
    UserCreated,
    UserList,
    UserLogin,
    UserResponse,
)

__all__ = [
    # Album schemas
    "AlbumCreate",
    "AlbumList",
    "AlbumResponse",
    "AlbumUpdate",
    "IdsBody",
    # File schemas
    "FileAlbum",
    "FileList",
    "FileResponse",
    # User schemas
    "LoginResponse",
    "PasswordUpdate",
    "TokenPayload",
    "UserCreate",
    "UserCreated",
    "UserList",
    "UserLogin",
    "UserResponse",
]
