"""
Album zip archives.
"""
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Iterable, List

from gallery_api.models import File
from gallery_api.services.storage import archive_path, gallery_path
from gallery_api.utils.logger import log_warning

COMPRESS_LEVEL = 9


def build_album_archive(album_name: str, files: Iterable[File]) -> Path:
    """
    Write every file of an album into archives/<album name>.zip.

    The archive is assembled in a temporary file next to the target and moved
    into place, so downloads never see a half written zip. Files missing on
    disk are skipped with a warning.

    Returns:
        Path of the archive
    """
    target = archive_path(album_name)
    target.parent.mkdir(parents=True, exist_ok=True)

    missing: List[str] = []
    fd, temp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=".zip")
    os.close(fd)
    try:
        with zipfile.ZipFile(
            temp_name, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESS_LEVEL
        ) as bundle:
            for file in files:
                source = gallery_path(file.name)
                if not source.is_file():
                    missing.append(file.name)
                    continue
                bundle.write(source, arcname=file.name)
        os.replace(temp_name, target)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise

    for name in missing:
        log_warning(
            f"Missing file '{name}' skipped while archiving '{album_name}'",
            event="archive",
            album=album_name,
        )
    return target
