"""
Sitemap entries for the public gallery site.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from gallery_api.config import get_settings
from gallery_api.dependencies.database import get_database
from gallery_api.services.database import Database
from gallery_api.structures import Route

router = APIRouter(tags=["Sitemap"])


@router.get("", summary="Sitemap entries of published albums")
async def get_sitemap(db: Database = Depends(get_database)) -> List[Dict[str, Any]]:
    """One entry per published album, sorted by name, listing its images on the CDN."""
    cdn_url = get_settings().cdn_base_url.rstrip("/")
    entries = []
    for album in await db.get_published_albums():
        files = await db.get_album_files(album.id)
        entries.append(
            {
                "loc": f"/albums/{album.id}",
                "changefreq": "monthly",
                "lastmod": album.modified_at.isoformat(),
                "priority": 0.8,
                "images": [{"loc": f"{cdn_url}/gallery/{file.name}"} for file in files],
            }
        )
    return entries


route = Route(path="/sitemap", router=router, position=2)
