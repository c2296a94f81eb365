"""
Bulk maintenance over the static root: importing an on-disk gallery tree and
re-probing stored images.
"""
import asyncio
import shutil
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from gallery_api.models import Album, File
from gallery_api.models.base import utcnow
from gallery_api.services import storage
from gallery_api.services.database import Database
from gallery_api.services.images import InvalidImageError, probe_image, write_thumbnail
from gallery_api.utils.logger import log_info, log_warning


class ImportReport(NamedTuple):
    imported: int
    attached: int
    skipped: int


class RefreshReport(NamedTuple):
    updated: int
    missing: int


async def _album_for(db: Database, name: str) -> Album:
    """Album with that name (any case), created as a posted album when missing."""
    album = await db.find_album_by_name(name)
    if album is not None:
        return album
    now = utcnow()
    album = await db.insert_album(
        Album(
            name=storage.check_album_name(name),
            draft=False,
            nsfw=False,
            hidden=False,
            favorite=False,
            featured=False,
            posted_at=now,
            created_at=now,
            modified_at=now,
        )
    )
    log_info("Album created from import", event="import", album_id=album.id)
    return album


async def _import_one(db: Database, path: Path, name: str) -> Optional[File]:
    """Copy, probe and register one image. Returns None when it is not an image."""
    destination = storage.gallery_path(name)
    copied = False
    if path.resolve() != destination.resolve():
        await asyncio.to_thread(shutil.copy2, path, destination)
        copied = True

    try:
        info = await asyncio.to_thread(probe_image, destination)
    except InvalidImageError:
        if copied:
            storage.remove_path(destination)
        log_warning(f"Skipped '{path}': not an image", event="import")
        return None

    await asyncio.to_thread(write_thumbnail, destination, storage.thumbnail_path(name))
    now = utcnow()
    return await db.insert_file(
        File(
            name=name,
            extname=storage.extension(name),
            type=info.format,
            size=destination.stat().st_size,
            width=info.width,
            height=info.height,
            album_id=None,
            created_at=now,
            modified_at=now,
        )
    )


async def import_gallery(source: Path, session_factory: Callable) -> ImportReport:
    """
    Register every image under source.

    Each image is filed under the album named after its parent directory,
    created when needed; images directly in source get no album. Images whose
    name is already registered are not copied again, but a record without an
    album is attached to the directory's album. Files Pillow cannot read are
    skipped.
    """
    source = Path(source)
    imported = attached = skipped = 0

    async with session_factory() as session:
        db = Database(session)
        for path in sorted(source.rglob("*")):
            if not path.is_file() or path.name.startswith("."):
                continue

            name = storage.safe_filename(path.name)
            record = await db.find_file_by_name(name)
            if record is None:
                record = await _import_one(db, path, name)
                if record is None:
                    skipped += 1
                    continue
                imported += 1

            if path.parent == source or record.album_id is not None:
                continue
            # uploaded covers stay album-less
            if storage.cover_path(record.name).is_file():
                continue

            album = await _album_for(db, path.parent.name)
            now = utcnow()
            await db.update_file(record.id, {"album_id": album.id, "modified_at": now})
            await db.update_album(album.id, {"modified_at": now})
            attached += 1

    report = ImportReport(imported, attached, skipped)
    log_info("Gallery import finished", event="import", **report._asdict())
    return report


async def refresh_metadata(session_factory: Callable) -> RefreshReport:
    """Probe every stored file again and rewrite its type, width and height."""
    updated = missing = 0

    async with session_factory() as session:
        db = Database(session)
        for file in await db.get_files(sort="name", order="asc"):
            path = storage.stored_path(file)
            try:
                info = await asyncio.to_thread(probe_image, path)
            except InvalidImageError:
                missing += 1
                log_warning(f"Cannot probe '{file.name}'", event="metadata", file_id=file.id)
                continue

            await db.update_file(
                file.id,
                {"type": info.format, "width": info.width, "height": info.height, "modified_at": utcnow()},
            )
            updated += 1

    report = RefreshReport(updated, missing)
    log_info("Metadata refresh finished", event="metadata", **report._asdict())
    return report
