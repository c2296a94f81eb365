"""
Database models package.
All models are exported here for easy import.
"""
from gallery_api.models.album import Album
from gallery_api.models.file import File
from gallery_api.models.user import UserCredentials, UserMetadata

__all__ = ["Album", "File", "UserMetadata", "UserCredentials"]
