"""
Regenerates the downloadable zip of every album.
"""
import asyncio

from gallery_api.services.archives import build_album_archive
from gallery_api.services.database import Database
from gallery_api.structures import Task
from gallery_api.utils.logger import log_error, log_info


class ArchivesUpdater(Task):
    name = "Update Albums Archives"
    schedule = "00:00"

    async def execute(self) -> int:
        """Returns the number of archives written; a failing album does not stop the others."""
        async with self.session_factory() as session:
            db = Database(session)
            albums = await db.get_albums()
            contents = [(album.name, await db.get_album_files(album.id)) for album in albums]

        written = 0
        for album_name, files in contents:
            try:
                path = await asyncio.to_thread(build_album_archive, album_name, files)
            except (OSError, ValueError) as e:
                log_error(
                    f"Archive failed for '{album_name}'",
                    event="task",
                    task=self.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue
            written += 1
            log_info(
                f"Archive written for '{album_name}'",
                event="task",
                task=self.name,
                files=len(files),
                bytes=path.stat().st_size,
            )
        return written
