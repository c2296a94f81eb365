"""
Data access layer.
The only place that builds queries; route handlers and tasks go through it.
"""
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Select, delete, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gallery_api.models import Album, File, UserCredentials, UserMetadata
from gallery_api.schemas.user import UserResponse
from gallery_api.utils.logger import log_warning

ALBUM_SORT_COLUMNS = {
    "name": func.lower(Album.name),
    "created_at": Album.created_at,
    "modified_at": Album.modified_at,
    "posted_at": Album.posted_at,
}

FILE_SORT_COLUMNS = {
    "name": func.lower(File.name),
    "created_at": File.created_at,
    "modified_at": File.modified_at,
    "size": File.size,
}


class DuplicateNameError(Exception):
    """A unique name constraint rejected an insert or update."""


def _ordered(query: Select, column, order: str) -> Select:
    return query.order_by(column.desc() if order == "desc" else column.asc())


class Database:
    """
    Query helpers bound to one AsyncSession.

    Changes are flushed, never committed: the owner of the session decides
    (request dependency or task context).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def ping(self) -> None:
        await self.session.execute(text("SELECT 1"))

    # ============== Albums ==============

    def _album_query(self) -> Select:
        return (
            select(Album)
            .options(selectinload(Album.cover), selectinload(Album.cover_fallback))
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _album_filters(
        query: Select,
        status: str = "all",
        favorites: bool = False,
        featured: bool = False,
        search: Optional[str] = None,
    ) -> Select:
        if status == "draft":
            query = query.where(Album.draft.is_(True))
        elif status == "posted":
            query = query.where(Album.draft.is_(False))
        if favorites:
            query = query.where(Album.favorite.is_(True))
        if featured:
            query = query.where(Album.featured.is_(True))
        if search:
            query = query.where(func.lower(Album.name).contains(search.lower(), autoescape=True))
        return query

    async def get_album_by_id(self, album_id: str) -> Optional[Album]:
        """Album with cover and fallback cover loaded."""
        result = await self.session.execute(self._album_query().where(Album.id == album_id))
        return result.scalar_one_or_none()

    async def get_albums(
        self,
        status: str = "all",
        favorites: bool = False,
        featured: bool = False,
        search: Optional[str] = None,
        sort: str = "name",
        order: str = "asc",
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Album]:
        """
        Filtered, sorted album page.

        Args:
            status: all, draft or posted
            favorites: only favorite albums
            featured: only featured albums
            search: case-insensitive substring of the name
            sort: name, created_at, modified_at or posted_at
            order: asc or desc
            skip: Number of records to skip
            limit: Maximum number of records, None for all
        """
        query = self._album_filters(self._album_query(), status, favorites, featured, search)
        query = _ordered(query, ALBUM_SORT_COLUMNS.get(sort, ALBUM_SORT_COLUMNS["name"]), order)
        query = query.order_by(Album.id).offset(skip)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_album_count(
        self,
        status: str = "all",
        favorites: bool = False,
        featured: bool = False,
        search: Optional[str] = None,
    ) -> int:
        query = self._album_filters(select(func.count(Album.id)), status, favorites, featured, search)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def get_published_albums(self) -> List[Album]:
        """Albums that are neither drafts nor hidden, by name."""
        result = await self.session.execute(
            self._album_query()
            .where(Album.draft.is_(False), Album.hidden.is_(False))
            .order_by(func.lower(Album.name), Album.id)
        )
        return list(result.scalars().all())

    async def find_album_by_name(self, name: str) -> Optional[Album]:
        """Case-insensitive lookup."""
        result = await self.session.execute(
            self._album_query().where(func.lower(Album.name) == name.lower())
        )
        return result.scalar_one_or_none()

    async def insert_album(self, album: Album) -> Album:
        """
        Insert an album.

        Raises:
            DuplicateNameError: another album already uses the name
        """
        self.session.add(album)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            log_warning("Album insert rejected", event="db", reason="duplicate_name")
            raise DuplicateNameError(album.name) from e
        return await self.get_album_by_id(album.id)

    async def update_album(self, album_id: str, fields: Dict[str, Any]) -> None:
        """
        Apply column updates to one album.

        Raises:
            DuplicateNameError: a rename collided with an existing album
        """
        if not fields:
            return
        try:
            await self.session.execute(
                update(Album).where(Album.id == album_id).values(**fields)
            )
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicateNameError(fields.get("name")) from e

    async def get_albums_by_cover(self, file_id: str) -> List[Album]:
        """Albums using the file as cover or fallback cover, wherever the file lives."""
        result = await self.session.execute(
            self._album_query().where(
                or_(Album.cover_id == file_id, Album.cover_fallback_id == file_id)
            )
        )
        return list(result.scalars().all())

    async def delete_album(self, album_id: str) -> None:
        await self.session.execute(delete(Album).where(Album.id == album_id))

    async def delete_albums(self, album_ids: Iterable[str]) -> None:
        await self.session.execute(delete(Album).where(Album.id.in_(list(album_ids))))

    async def get_album_file_count(self, album_id: str) -> int:
        result = await self.session.execute(
            select(func.count(File.id)).where(File.album_id == album_id)
        )
        return result.scalar() or 0

    async def get_album_file_counts(self, album_ids: Iterable[str]) -> Dict[str, int]:
        """File counts for several albums in one query; albums without files map to 0."""
        ids = list(album_ids)
        counts = dict.fromkeys(ids, 0)
        if not ids:
            return counts
        result = await self.session.execute(
            select(File.album_id, func.count(File.id))
            .where(File.album_id.in_(ids))
            .group_by(File.album_id)
        )
        for album_id, count in result.all():
            counts[album_id] = count
        return counts

    # ============== Files ==============

    async def get_album_files(self, album_id: str) -> List[File]:
        """Files of an album, oldest first (ties broken by id)."""
        result = await self.session.execute(
            select(File)
            .where(File.album_id == album_id)
            .order_by(File.created_at.asc(), File.id.asc())
        )
        return list(result.scalars().all())

    async def get_files(
        self,
        search: Optional[str] = None,
        sort: str = "created_at",
        order: str = "desc",
        include_album: bool = False,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[File]:
        query = select(File)
        if include_album:
            query = query.options(selectinload(File.album))
        if search:
            query = query.where(func.lower(File.name).contains(search.lower(), autoescape=True))
        query = _ordered(query, FILE_SORT_COLUMNS.get(sort, FILE_SORT_COLUMNS["created_at"]), order)
        query = query.order_by(File.id).offset(skip)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_file_count(self, search: Optional[str] = None) -> int:
        query = select(func.count(File.id))
        if search:
            query = query.where(func.lower(File.name).contains(search.lower(), autoescape=True))
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def get_file_by_id(self, file_id: str, include_album: bool = False) -> Optional[File]:
        query = select(File).where(File.id == file_id).execution_options(populate_existing=True)
        if include_album:
            query = query.options(selectinload(File.album))
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_file_by_name(self, name: str) -> Optional[File]:
        """Case-insensitive lookup with the owning album loaded."""
        result = await self.session.execute(
            select(File)
            .options(selectinload(File.album))
            .where(func.lower(File.name) == name.lower())
        )
        return result.scalar_one_or_none()

    async def insert_file(self, file: File) -> File:
        """
        Insert a file record.

        Raises:
            DuplicateNameError: another file already uses the name
        """
        self.session.add(file)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            log_warning("File insert rejected", event="db", reason="duplicate_name")
            raise DuplicateNameError(file.name) from e
        return file

    async def update_file(self, file_id: str, fields: Dict[str, Any]) -> None:
        if fields:
            await self.session.execute(update(File).where(File.id == file_id).values(**fields))

    async def delete_file(self, file_id: str) -> None:
        await self.session.execute(delete(File).where(File.id == file_id))

    async def delete_files(self, file_ids: Iterable[str]) -> None:
        await self.session.execute(delete(File).where(File.id.in_(list(file_ids))))

    async def delete_album_files(self, album_id: str) -> List[File]:
        """Delete every file record of an album and return the deleted records."""
        files = await self.get_album_files(album_id)
        await self.session.execute(delete(File).where(File.album_id == album_id))
        return files

    # ============== Users ==============

    @staticmethod
    def _user_response(metadata: UserMetadata, email: Optional[str]) -> UserResponse:
        return UserResponse.model_validate(metadata).model_copy(update={"email": email})

    async def get_user_by_id(self, user_id: str) -> Optional[UserResponse]:
        """Metadata merged with the credentials email; the password hash is left out."""
        result = await self.session.execute(
            select(UserMetadata, UserCredentials.email)
            .outerjoin(UserCredentials, UserCredentials.id == UserMetadata.id)
            .where(UserMetadata.id == user_id)
        )
        row = result.first()
        if row is None:
            return None
        return self._user_response(row[0], row[1])

    async def get_user_by_email(self, email: str) -> Optional[UserCredentials]:
        result = await self.session.execute(
            select(UserCredentials).where(func.lower(UserCredentials.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_credentials(self, user_id: str) -> Optional[UserCredentials]:
        result = await self.session.execute(
            select(UserCredentials).where(UserCredentials.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_users_sorted(self, skip: int = 0, limit: Optional[int] = None) -> List[UserResponse]:
        """Users ordered by first name."""
        query = (
            select(UserMetadata, UserCredentials.email)
            .outerjoin(UserCredentials, UserCredentials.id == UserMetadata.id)
            .order_by(func.lower(UserMetadata.first_name), UserMetadata.id)
            .offset(skip)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return [self._user_response(metadata, email) for metadata, email in result.all()]

    async def get_user_count(self) -> int:
        result = await self.session.execute(select(func.count(UserMetadata.id)))
        return result.scalar() or 0

    async def insert_user(self, metadata: UserMetadata, credentials: UserCredentials) -> UserResponse:
        """
        Insert both user records under the same id.

        Raises:
            DuplicateNameError: the email is already registered
        """
        self.session.add(metadata)
        try:
            await self.session.flush()
            credentials.id = metadata.id
            self.session.add(credentials)
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicateNameError(credentials.email) from e
        return self._user_response(metadata, credentials.email)

    async def update_user_credentials(self, user_id: str, fields: Dict[str, Any]) -> None:
        if fields:
            await self.session.execute(
                update(UserCredentials).where(UserCredentials.id == user_id).values(**fields)
            )

    async def update_user_metadata(self, user_id: str, fields: Dict[str, Any]) -> None:
        if fields:
            await self.session.execute(
                update(UserMetadata).where(UserMetadata.id == user_id).values(**fields)
            )
