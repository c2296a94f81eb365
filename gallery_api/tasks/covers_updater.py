"""
Keeps album cover references consistent with the stored files.
"""
from typing import Dict, Optional

from gallery_api.services.database import Database
from gallery_api.structures import Task
from gallery_api.utils.logger import log_info


class CoversUpdater(Task):
    """
    For every album:
    - drop cover_id when the cover file no longer exists
    - point cover_fallback_id at the album's first file (or null when empty)

    Running it twice in a row changes nothing the second time.
    """

    name = "Update Albums"
    schedule = "00:00"

    async def execute(self) -> int:
        updated = 0
        async with self.session_factory() as session:
            db = Database(session)
            for album in await db.get_albums():
                fields: Dict[str, Optional[str]] = {}

                if album.cover_id and await db.get_file_by_id(album.cover_id) is None:
                    fields["cover_id"] = None

                files = await db.get_album_files(album.id)
                first_id = files[0].id if files else None
                if album.cover_fallback_id != first_id:
                    fields["cover_fallback_id"] = first_id

                if fields:
                    await db.update_album(album.id, fields)
                    updated += 1

        if updated:
            log_info(f"Covers updated for {updated} album(s)", event="task", task=self.name)
        return updated
