"""
On-disk layout of the static root.

gallery/<name>            original album images
thumbnails/<stem>.webp    thumbnails of album images
covers/<name>             uploaded album covers
archives/<album>.zip      per album downloads
"""
import os
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from fastapi import UploadFile

from gallery_api.config import get_settings
from gallery_api.models import File

CHUNK_SIZE = 1024 * 1024


class UploadTooLargeError(Exception):
    """The upload exceeded the configured maximum size."""


def safe_filename(raw: Optional[str]) -> str:
    """
    Decode a client supplied file name and strip any directory part.

    Raises:
        ValueError: nothing usable is left
    """
    name = os.path.basename(unquote(raw or "").replace("\\", "/")).strip()
    if name in ("", ".", ".."):
        raise ValueError("Invalid file name")
    return name


def gallery_path(name: str) -> Path:
    return get_settings().static_dir("gallery") / name


def thumbnail_path(name: str) -> Path:
    return get_settings().static_dir("thumbnails") / f"{Path(name).stem}.webp"


def cover_path(name: str) -> Path:
    return get_settings().static_dir("covers") / name


def check_album_name(name: str) -> str:
    """
    Album names double as archive file names.

    Raises:
        ValueError: the name holds a path separator or NUL, or is blank or a dot name
    """
    if any(char in name for char in ("/", "\\", "\0")) or name.strip() in ("", ".", ".."):
        raise ValueError("Album name cannot contain path separators or be blank or a dot name")
    return name


def archive_path(album_name: str) -> Path:
    """
    Raises:
        ValueError: the resolved path is not directly inside archives/
    """
    archives = get_settings().static_dir("archives")
    path = archives / f"{check_album_name(album_name)}.zip"
    if path.resolve().parent != archives.resolve():
        raise ValueError(f"Archive path escapes {archives}")
    return path


def stored_path(file: File) -> Path:
    """Where the bytes of a record live: covers/ for album-less covers, gallery/ otherwise."""
    if file.album_id is None:
        cover = cover_path(file.name)
        if cover.is_file():
            return cover
    return gallery_path(file.name)


def remove_path(path: Path) -> bool:
    """Unlink a file, returns False when it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def remove_file_assets(file: File) -> None:
    """Remove the bytes behind a file record (image and thumbnail, or cover)."""
    if file.album_id is None:
        remove_path(cover_path(file.name))
    # names are unique across files, so the gallery copy is always this record's
    remove_path(gallery_path(file.name))
    remove_path(thumbnail_path(file.name))


def rename_archive(old_name: str, new_name: str) -> bool:
    """Move an album archive after a rename; no-op when there is none yet."""
    source = archive_path(old_name)
    if not source.exists():
        return False
    os.replace(source, archive_path(new_name))
    return True


async def save_upload(upload: UploadFile, destination: Path, max_size: int) -> int:
    """
    Stream an upload to disk.

    Returns:
        Number of bytes written

    Raises:
        UploadTooLargeError: more than max_size bytes were sent; the partial
            file is removed
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    try:
        with open(destination, "wb") as fh:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_size:
                    raise UploadTooLargeError(f"{written} > {max_size}")
                fh.write(chunk)
    except BaseException:
        remove_path(destination)
        raise
    return written


def extension(name: str) -> str:
    """Extension including the dot, lower-cased ("" when there is none)."""
    return Path(name).suffix.lower()
